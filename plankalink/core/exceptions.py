"""
Custom application exceptions.
"""
from typing import Optional, Union


class PlankaLinkException(Exception):
    """Base exception for the Planka link service."""
    pass


class ValidationError(PlankaLinkException):
    """Raised when required input fields are missing or invalid."""
    pass


class InvalidCredentialsError(PlankaLinkException):
    """Raised when credentials are invalid."""
    pass


# Planka credential failures use the same generic error as local ones.
AuthenticationError = InvalidCredentialsError


class UnauthorizedError(PlankaLinkException):
    """Raised when user is not authorized."""
    pass


class UserNotFoundError(PlankaLinkException):
    """Raised when a user is not found."""
    pass


class UserAlreadyExistsError(PlankaLinkException):
    """Raised when a user already exists."""
    pass


class ConfigurationError(PlankaLinkException):
    """Raised when the integration is misconfigured or Planka returns an unusable profile."""
    pass


class IntegrationDisabledError(ConfigurationError):
    """Raised when the Planka integration flags are not both set."""
    pass


class InfrastructureError(PlankaLinkException):
    """Raised when the credential store or encryption fails. Safe to retry."""
    pass


class PlankaAPIError(PlankaLinkException):
    """Raised when a Planka API call fails at the HTTP or transport level."""

    def __init__(self, status_code: Union[int, str], body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Planka API error ({status_code}): {body}")


class PlankaTimeoutError(PlankaLinkException):
    """Raised when Planka does not answer within the configured bound."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Planka API timeout after {timeout_seconds:g} seconds")


class PlankaProtocolError(PlankaLinkException):
    """Raised when a Planka response cannot be normalized."""
    pass
