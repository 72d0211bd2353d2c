"""
Rate limiting for public authentication endpoints, backed by slowapi.
"""
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from plankalink.core.config import settings
from plankalink.core.logging_config import log_warning

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limiting_enabled,
)

AUTH_LIMITS = {
    "login": "5/minute",
    "planka_login": settings.planka_login_rate_limit,
}


def auth_rate_limit(endpoint: str) -> Callable:
    """
    Decorator applying the configured limit for an auth endpoint.

    The decorated endpoint must accept a `request: Request` parameter.
    """
    return limiter.limit(AUTH_LIMITS.get(endpoint, "10/minute"))


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a 429 response when a client exceeds its limit."""
    client_host = request.client.host if request.client else "unknown"
    log_warning(
        "Rate limit exceeded",
        path=request.url.path,
        client_ip=client_host,
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests. Please try again later."},
    )
