"""
FastAPI router for the Planka integration.

Endpoints:
- POST /planka/login: Log in (or sign up) with Planka credentials
- POST /planka/link: Link a Planka account to the current user
- POST /planka/unlink: Remove the stored Planka credential
- GET /planka/status: Link state of the current user
- GET /planka/config: Whether the integration is enabled (never gated)
- GET /planka/ping: Whether the configured Planka instance answers

Gating:
- Every route except /config is refused with 503 while the integration is
  disabled, before authentication or body handling
"""
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response, status
from sqlmodel import Session

from plankalink.api.dependencies import check_ban, get_current_user, get_request_id
from plankalink.core.config import settings
from plankalink.core.database import get_session
from plankalink.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InfrastructureError,
    IntegrationDisabledError,
    PlankaAPIError,
    PlankaLinkException,
    PlankaProtocolError,
    PlankaTimeoutError,
    UnauthorizedError,
    UserAlreadyExistsError,
    ValidationError,
)
from plankalink.core.logging_config import LogCategory, RateLimitedLogger, log_error
from plankalink.core.rate_limiting import auth_rate_limit
from plankalink.integrations.schemas import (
    PlankaConfigResponse,
    PlankaCredentialsRequest,
    PlankaLinkResponse,
    PlankaLoginResponse,
    PlankaPingResponse,
    PlankaStatusResponse,
    PlankaUnlinkResponse,
)
from plankalink.integrations.service import (
    get_planka_config,
    get_planka_status,
    link_planka_account,
    login_with_planka,
    ping_planka,
    unlink_planka_account,
)
from plankalink.models.user import User

DISABLED_DETAIL = "Planka integration is not enabled"


class PlankaGate:
    """
    Dependency that short-circuits Planka routes while the integration is disabled.

    The disabled warning is emitted at most once per interval per gate instance.
    """

    def __init__(self, log_interval_seconds: float = 300.0):
        self.disabled_log = RateLimitedLogger(
            interval_seconds=log_interval_seconds,
            logger=logging.getLogger(LogCategory.PLANKA),
        )

    def __call__(self, request: Request) -> None:
        if settings.planka_enabled:
            return
        self.disabled_log.warning(
            "planka-disabled",
            "Planka route requested while the integration is disabled",
            path=request.url.path,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DISABLED_DETAIL,
        )


planka_gate = PlankaGate()

router = APIRouter(prefix="/planka", tags=["planka"])


def _to_http_exception(exc: PlankaLinkException, fallback_detail: str) -> HTTPException:
    """Map a workflow failure to a stable status and message. Planka error bodies are never passed through."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, IntegrationDisabledError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=DISABLED_DETAIL)
    if isinstance(exc, (AuthenticationError, PlankaAPIError)):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Planka credentials")
    if isinstance(exc, PlankaTimeoutError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc))
    if isinstance(exc, PlankaProtocolError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unexpected response from Planka",
        )
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, UserAlreadyExistsError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Account already linked, please try again",
        )
    if isinstance(exc, InfrastructureError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service temporarily unavailable, please retry",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=fallback_detail)


@router.post(
    "/login",
    response_model=PlankaLoginResponse,
    dependencies=[Depends(planka_gate), Depends(check_ban)],
    responses={
        400: {"description": "Email/username or password missing"},
        401: {"description": "Invalid Planka credentials"},
        403: {"description": "Client banned or account inactive"},
        429: {"description": "Too many requests"},
        500: {"description": "Misconfigured integration or unexpected error"},
        503: {"description": "Planka integration is not enabled"},
        504: {"description": "Planka did not answer in time"},
    }
)
@auth_rate_limit("planka_login")
async def login(
    request: Request,
    response: Response,
    session: Annotated[Session, Depends(get_session)],
    request_id: Annotated[str, Depends(get_request_id)],
    credentials: Optional[PlankaCredentialsRequest] = Body(None),
) -> PlankaLoginResponse:
    """
    Log in with Planka credentials.

    Creates the local account on first login, stores the Planka token, and
    returns a local session token (also set as the access_token cookie).
    """
    credentials = credentials or PlankaCredentialsRequest()
    try:
        result = await login_with_planka(
            session=session,
            email_or_username=credentials.email_or_username,
            password=credentials.password,
        )
    except PlankaLinkException as e:
        if not isinstance(e, (ValidationError, AuthenticationError, PlankaAPIError)):
            log_error(e, request_id=request_id, action="planka_login")
        raise _to_http_exception(e, "An error occurred during login") from None
    except Exception as e:
        log_error(e, request_id=request_id, action="planka_login")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during login"
        )

    response.set_cookie(
        key="access_token",
        value=result.token,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )
    return result


@router.post(
    "/link",
    response_model=PlankaLinkResponse,
    dependencies=[Depends(planka_gate)],
    responses={
        400: {"description": "Email/username or password missing"},
        401: {"description": "Not authenticated or invalid Planka credentials"},
        500: {"description": "Failed to link account"},
        503: {"description": "Planka integration is not enabled"},
    }
)
async def link(
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    request_id: Annotated[str, Depends(get_request_id)],
    credentials: Optional[PlankaCredentialsRequest] = Body(None),
) -> PlankaLinkResponse:
    """Link a Planka account to the current local account."""
    credentials = credentials or PlankaCredentialsRequest()
    try:
        return await link_planka_account(
            session=session,
            user=current_user,
            email_or_username=credentials.email_or_username,
            password=credentials.password,
        )
    except PlankaLinkException as e:
        if not isinstance(e, (ValidationError, AuthenticationError, PlankaAPIError)):
            log_error(e, request_id=request_id, user_email=current_user.email)
        raise _to_http_exception(e, "An error occurred while linking account") from None
    except Exception as e:
        log_error(e, request_id=request_id, user_email=current_user.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while linking account"
        )


@router.post(
    "/unlink",
    response_model=PlankaUnlinkResponse,
    dependencies=[Depends(planka_gate)],
    responses={
        401: {"description": "Not authenticated"},
        500: {"description": "Failed to unlink Planka account"},
        503: {"description": "Planka integration is not enabled"},
    }
)
async def unlink(
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    request_id: Annotated[str, Depends(get_request_id)],
) -> PlankaUnlinkResponse:
    """Remove the stored Planka credential. Succeeds when nothing is linked."""
    try:
        return await unlink_planka_account(session=session, user=current_user)
    except Exception as e:
        log_error(e, request_id=request_id, user_email=current_user.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to unlink Planka account"
        )


@router.get(
    "/status",
    response_model=PlankaStatusResponse,
    dependencies=[Depends(planka_gate)],
    responses={
        401: {"description": "Not authenticated"},
        500: {"description": "Failed to get Planka status"},
        503: {"description": "Planka integration is not enabled"},
    }
)
async def get_status(
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    request_id: Annotated[str, Depends(get_request_id)],
) -> PlankaStatusResponse:
    """Link state of the current user, read from storage only."""
    try:
        return get_planka_status(session=session, user=current_user)
    except Exception as e:
        log_error(e, request_id=request_id, user_email=current_user.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get Planka status"
        )


@router.get("/config", response_model=PlankaConfigResponse)
async def get_config() -> PlankaConfigResponse:
    """Public integration config used by the login page."""
    return get_planka_config()


@router.get(
    "/ping",
    response_model=PlankaPingResponse,
    dependencies=[Depends(planka_gate)],
)
async def ping() -> PlankaPingResponse:
    """Report whether the configured Planka instance is reachable."""
    return PlankaPingResponse(reachable=await ping_planka())
