"""
Main FastAPI application for the Planka link service.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from plankalink.api.v1.api import api_router
from plankalink.core.config import settings
from plankalink.core.database import init_db
from plankalink.core.exceptions import (
    InfrastructureError,
    IntegrationDisabledError,
    InvalidCredentialsError,
    PlankaLinkException,
    PlankaTimeoutError,
    UnauthorizedError,
    UserAlreadyExistsError,
    UserNotFoundError,
    ValidationError,
)
from plankalink.core.http_client import close_http_client
from plankalink.core.logging_config import setup_logging, log_info, log_warning, log_error
from plankalink.core.rate_limiting import limiter, rate_limit_exceeded_handler
from plankalink.middleware.request_logging import request_id_ctx, RequestLoggingMiddleware

# -----------------------------------------------------------------------------
# Startup / Shutdown
# -----------------------------------------------------------------------------
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    log_info("Starting up Planka link service...")
    try:
        init_db()
        log_info("Database initialization completed!")
    except Exception as exc:
        log_error(exc)
        raise

    if settings.planka_enabled:
        log_info("Planka integration enabled", planka_base_url=settings.planka_base_url)
    else:
        log_info("Planka integration disabled; /planka routes will answer 503")

    yield
    log_info("Shutting down Planka link service...")
    try:
        await close_http_client()
    except Exception as exc:
        log_warning(f"Failed to close HTTP client: {exc}")


# -----------------------------------------------------------------------------
# App Initialization
# -----------------------------------------------------------------------------
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Planka login and account linking",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# -----------------------------------------------------------------------------
# Middleware Configuration
# -----------------------------------------------------------------------------
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or [],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
        max_age=3600,
    )
    log_info(f"CORS enabled for origins: {settings.cors_origins}")

app.add_middleware(RequestLoggingMiddleware)


# -----------------------------------------------------------------------------
# Exception Handlers
# -----------------------------------------------------------------------------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report request validation errors without echoing submitted values."""
    request_id = request_id_ctx.get()
    errors = [
        {"loc": err.get("loc"), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    log_warning(
        "Request validation failed",
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        errors=errors,
    )
    return JSONResponse(
        status_code=422,
        content={"detail": errors, "request_id": request_id},
    )


@app.exception_handler(PlankaLinkException)
async def planka_link_exception_handler(request: Request, exc: PlankaLinkException):
    """Map domain exceptions that escape a route to the same statuses the routes use."""
    request_id = request_id_ctx.get()
    log_error(exc, request_id=request_id)

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, InvalidCredentialsError):
        status_code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(exc, UnauthorizedError):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, UserNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, UserAlreadyExistsError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, IntegrationDisabledError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, PlankaTimeoutError):
        status_code = status.HTTP_504_GATEWAY_TIMEOUT

    if isinstance(exc, InfrastructureError):
        detail = "Service temporarily unavailable, please retry"
    elif status_code == status.HTTP_500_INTERNAL_SERVER_ERROR and settings.environment == "production":
        detail = "An unexpected internal error occurred."
    else:
        detail = str(exc)

    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": request_id},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    request_id = request_id_ctx.get()
    log_error(exc, request_id=request_id)
    detail = (
        "An unexpected error occurred. Please try again later."
        if settings.environment == "production"
        else str(exc)
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": detail, "request_id": request_id},
    )


# -----------------------------------------------------------------------------
# API Routers
# -----------------------------------------------------------------------------
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok", "version": settings.app_version}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "plankalink.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
