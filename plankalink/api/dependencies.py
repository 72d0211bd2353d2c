"""
Shared API dependencies.
"""
import logging
from typing import Annotated, Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError
from sqlmodel import Session

from plankalink.core.config import settings
from plankalink.core.database import get_session
from plankalink.core.logging_config import LogCategory
from plankalink.core.security import verify_token
from plankalink.middleware.request_logging import request_id_ctx
from plankalink.models.user import User
from plankalink.services.user_service import UserService

logger = logging.getLogger(__name__)
security_logger = logging.getLogger(LogCategory.SECURITY)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def get_request_id() -> str:
    """Return the current request ID, or 'unknown' outside a request."""
    return request_id_ctx.get()


async def get_current_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    cookie_token: Annotated[Optional[str], Cookie(alias="access_token")] = None,
    session: Annotated[Session, Depends(get_session)] = None
) -> User:
    """
    Dependency to get the current authenticated user from the token.
    Raises HTTPException with status 401 if authentication fails.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # Authorization header first, then the cookie set by the login endpoints
    token_to_use = token or cookie_token
    if token_to_use is None:
        raise credentials_exception

    try:
        payload = verify_token(token_to_use, "access")
        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise credentials_exception
    except ExpiredSignatureError:
        logger.info("Expired token presented")
        raise credentials_exception
    except JWTError as e:
        logger.warning("JWT error during token validation", extra={"error": str(e)})
        raise credentials_exception

    user = UserService(session).get_user_by_id(user_id)
    if user is None:
        raise credentials_exception

    if not user.is_active:
        logger.info("Inactive user access attempt", extra={"user_id": user_id})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


def check_ban(request: Request) -> None:
    """
    Dependency that refuses clients listed in BANNED_IPS.

    Raises HTTPException 403 for a banned address.
    """
    client_host = request.client.host if request.client else None
    if client_host and client_host in (settings.banned_ips or []):
        security_logger.warning(f"Rejected request from banned address {client_host} to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied"
        )
