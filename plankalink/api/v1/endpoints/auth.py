"""
Authentication endpoints for local accounts.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlmodel import Session

from plankalink.api.dependencies import check_ban, get_current_user, get_request_id
from plankalink.core.config import settings
from plankalink.core.database import get_session
from plankalink.core.exceptions import InvalidCredentialsError, UnauthorizedError
from plankalink.core.logging_config import log_error, log_user_action
from plankalink.core.rate_limiting import auth_rate_limit
from plankalink.core.security import create_access_token
from plankalink.integrations.service import build_user_payload
from plankalink.models.user import User
from plankalink.schemas.auth import LoginResponse, UserLogin
from plankalink.services.planka_token_service import PlankaTokenService
from plankalink.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(check_ban)],
    responses={
        401: {"description": "Invalid credentials"},
        403: {"description": "Client banned"},
        429: {"description": "Too many requests"},
        500: {"description": "Internal server error"},
    }
)
@auth_rate_limit("login")
async def login(
    request: Request,
    response: Response,
    user_data: UserLogin,
    session: Annotated[Session, Depends(get_session)],
    request_id: Annotated[str, Depends(get_request_id)],
):
    """
    Login with email and password.

    Accounts created through Planka login accept the Planka password here
    unless PLANKA_DERIVE_LOCAL_PASSWORD is off.
    """
    try:
        user_service = UserService(session)

        try:
            user = user_service.authenticate_user(user_data.email, user_data.password)
        except InvalidCredentialsError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
                headers={"WWW-Authenticate": "Bearer"},
            ) from None
        except UnauthorizedError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User account is inactive",
                headers={"WWW-Authenticate": "Bearer"},
            ) from None

        user = user_service.record_login(user)
        access_token = create_access_token(data={"sub": str(user.id)})
        response.set_cookie(
            key="access_token",
            value=access_token,
            httponly=True,
            secure=settings.environment == "production",
            samesite="lax",
            max_age=settings.access_token_expire_minutes * 60,
        )

        linked = PlankaTokenService(session).is_linked(user.id)
        log_user_action(user.email, "logged in", request_id=request_id)
        return LoginResponse(token=access_token, user=build_user_payload(user, planka_connected=linked))
    except HTTPException:
        raise
    except Exception as e:
        log_error(e, request_id=request_id, user_email=user_data.email)
        raise HTTPException(status_code=500, detail="An error occurred during login")


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Clear the session cookie. Stored Planka credentials are kept."""
    response.delete_cookie("access_token")
    log_user_action(current_user.email, "logged out")
