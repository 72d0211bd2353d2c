"""
Planka identity-linking workflow.

This module orchestrates the operations exposed by the Planka router:
login (find-or-create a local account, then link), link, unlink and status.

Architecture:
- planka.py: Planka-specific HTTP calls and response normalization
- service.py (this module): business rules and database operations
- PlankaTokenService: encrypted credential storage
- UserService: local accounts

Design Principles:
- Planka is contacted only by login and link (and unlink when revocation is enabled)
- Status is answered from storage alone
- Planka failures during login/link surface as a generic "invalid credentials"
"""
from typing import Any, Dict, Optional, Tuple

from sqlmodel import Session

from plankalink.core.config import settings
from plankalink.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    IntegrationDisabledError,
    PlankaAPIError,
    PlankaLinkException,
    UnauthorizedError,
    UserAlreadyExistsError,
    ValidationError,
)
from plankalink.core.logging_config import log_info, log_user_action, log_warning
from plankalink.core.security import create_access_token
from plankalink.integrations import planka
from plankalink.integrations.schemas import (
    PlankaAuthResult,
    PlankaConfigResponse,
    PlankaLinkResponse,
    PlankaLoginResponse,
    PlankaProfile,
    PlankaStatusResponse,
    PlankaUnlinkResponse,
    PlankaUserSummary,
)
from plankalink.models.enums import AuthProvider
from plankalink.models.user import User
from plankalink.services.planka_token_service import PlankaTokenService
from plankalink.services.user_service import UserService

# Fields never returned to the client
_PRIVATE_USER_FIELDS = {"password"}


def require_planka_enabled() -> str:
    """
    Return the configured Planka base URL.

    Raises:
        IntegrationDisabledError: If the base URL or the enable switch is missing
    """
    if not settings.planka_enabled:
        raise IntegrationDisabledError("Planka integration is not enabled")
    return settings.planka_base_url


def get_planka_config() -> PlankaConfigResponse:
    """Report whether the integration is active and, if so, where Planka lives."""
    enabled = settings.planka_enabled
    return PlankaConfigResponse(
        enabled=enabled,
        base_url=settings.planka_base_url if enabled else None,
    )


def _require_credentials(email_or_username: Optional[str], password: Optional[str]) -> Tuple[str, str]:
    if not email_or_username or not password:
        raise ValidationError("Email/username and password are required")
    return email_or_username, password


async def _authenticate(email_or_username: str, password: str) -> PlankaAuthResult:
    """
    Authenticate against Planka, folding API failures into AuthenticationError.

    Timeouts and protocol errors propagate unchanged.
    """
    base_url = require_planka_enabled()
    try:
        return await planka.authenticate(base_url, email_or_username, password)
    except PlankaAPIError as e:
        log_warning("Planka authentication failed", status=e.status_code)
        raise AuthenticationError("Invalid Planka credentials") from e


def build_user_payload(user: User, planka_connected: bool = True) -> Dict[str, Any]:
    """Serialize a local user for the client, without secrets."""
    payload = user.model_dump(mode="json", exclude=_PRIVATE_USER_FIELDS)
    payload["id"] = str(user.id)
    payload["plankaConnected"] = planka_connected
    return payload


def _find_or_create_user(
    session: Session,
    profile: PlankaProfile,
    identifier: str,
    password: str,
) -> User:
    """
    Resolve the local account for a Planka profile by email, creating it on first login.

    A concurrent first login for the same email loses on the unique constraint;
    the loser re-reads the account created by the winner.
    """
    user_service = UserService(session)
    user = user_service.get_user_by_email(profile.email)
    if user:
        return user

    local_password = password if settings.planka_derive_local_password else None
    try:
        user = user_service.create_user(
            email=profile.email,
            name=profile.name or profile.username or identifier,
            username=profile.username or identifier.split("@")[0],
            password=local_password,
            provider=AuthProvider.PLANKA,
            email_verified=True,
        )
    except UserAlreadyExistsError:
        user = user_service.get_user_by_email(profile.email)
        if user is None:
            raise
        log_info("Concurrent Planka account creation resolved", user_id=str(user.id))
        return user

    log_user_action(user.email, "account created via Planka login", user_id=str(user.id))
    return user


async def login_with_planka(
    session: Session,
    email_or_username: Optional[str],
    password: Optional[str],
) -> PlankaLoginResponse:
    """
    Log in with Planka credentials.

    Steps:
        1. Authenticate against Planka
        2. Require an email on the Planka profile
        3. Find the local account by email, or create it
        4. Store the Planka token for that account
        5. Issue a local session token

    Raises:
        ValidationError: Missing email/username or password
        IntegrationDisabledError: Integration not enabled
        AuthenticationError: Planka rejected the credentials
        ConfigurationError: Planka returned a profile without email
        UnauthorizedError: The local account is inactive
        InfrastructureError: Credential storage failed
    """
    email_or_username, password = _require_credentials(email_or_username, password)
    auth = await _authenticate(email_or_username, password)

    if not auth.user.email:
        log_warning("Planka profile has no email", planka_user_id=auth.user.id)
        raise ConfigurationError("Failed to get user data from Planka")

    user = _find_or_create_user(session, auth.user, email_or_username, password)
    if not user.is_active:
        raise UnauthorizedError("User account is inactive")

    PlankaTokenService(session).store(user.id, auth.access_token, auth.user.snapshot())
    user = UserService(session).record_login(user)

    token = create_access_token({"sub": str(user.id)})
    log_user_action(user.email, "logged in with Planka", user_id=str(user.id))
    return PlankaLoginResponse(token=token, user=build_user_payload(user))


async def link_planka_account(
    session: Session,
    user: User,
    email_or_username: Optional[str],
    password: Optional[str],
) -> PlankaLinkResponse:
    """
    Attach a Planka identity to an already-authenticated local account.

    The Planka email is not matched against the local account; the association is
    made by this explicit call alone.
    """
    email_or_username, password = _require_credentials(email_or_username, password)
    auth = await _authenticate(email_or_username, password)

    PlankaTokenService(session).store(user.id, auth.access_token, auth.user.snapshot())
    log_user_action(user.email, "linked Planka account", user_id=str(user.id))

    return PlankaLinkResponse(
        message="Planka account linked successfully",
        planka_user=PlankaUserSummary(
            email=auth.user.email,
            name=auth.user.name,
            username=auth.user.username,
        ),
    )


async def unlink_planka_account(session: Session, user: User) -> PlankaUnlinkResponse:
    """
    Remove the stored Planka credential. Unlinking an unlinked account is not an error.

    When planka_revoke_token_on_unlink is set, the token is also revoked on Planka
    (best effort).
    """
    token_service = PlankaTokenService(session)

    if settings.planka_revoke_token_on_unlink and settings.planka_enabled:
        credential = token_service.fetch(user.id)
        if credential is not None:
            try:
                await planka.revoke_access_token(settings.planka_base_url, credential.access_token)
            except PlankaLinkException as e:
                log_warning("Planka token revocation failed", user_id=str(user.id), error=str(e))

    removed = token_service.remove(user.id)
    log_user_action(user.email, "unlinked Planka account", user_id=str(user.id), removed=removed)
    return PlankaUnlinkResponse(message="Planka account unlinked successfully")


def get_planka_status(session: Session, user: User) -> PlankaStatusResponse:
    """Report link state from storage. Planka is not contacted."""
    credential = PlankaTokenService(session).fetch(user.id)
    if credential is None or not credential.access_token:
        return PlankaStatusResponse(connected=False, user_data=None)
    return PlankaStatusResponse(connected=True, user_data=credential.user_data)


async def ping_planka() -> bool:
    """Check that the configured Planka instance answers."""
    base_url = require_planka_enabled()
    return await planka.test_connection(base_url)
