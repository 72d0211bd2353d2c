"""
Request logging middleware with request ID tracking.
"""
import json
import logging
import time
import uuid
from contextvars import ContextVar

from plankalink.core.logging_config import LogCategory, _sanitize_data

logger = logging.getLogger(LogCategory.REQUEST)

# Context variable for request ID propagation
request_id_ctx: ContextVar[str] = ContextVar('request_id', default='unknown')

# Default status code when response is not captured
DEFAULT_STATUS_CODE = 500

# Client error bodies are logged for debugging, truncated to this many characters
_MAX_LOGGED_BODY = 1000


def _sanitize_response_body(response_body: str) -> str:
    """Mask sensitive fields in a JSON or plain-text response body."""
    if not response_body:
        return response_body

    try:
        return json.dumps(_sanitize_data(json.loads(response_body)))
    except (json.JSONDecodeError, TypeError):
        sanitized = _sanitize_data(response_body)
        return str(sanitized) if sanitized is not None else ""


class RequestLoggingMiddleware:
    """
    ASGI middleware that tags each HTTP request with an ID and logs its outcome.

    The ID is exposed through request_id_ctx and returned in the x-request-id
    response header. Request bodies are never logged, so Planka passwords
    submitted to /planka/login stay out of the logs.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        request_id_ctx.set(request_id)
        start_time = time.time()

        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "/")
        client_host = scope["client"][0] if scope.get("client") else "unknown"

        logger.info(
            "Request started",
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "client_ip": client_host,
                "event": "request_start",
            },
        )

        status_code = DEFAULT_STATUS_CODE
        response_body = None

        async def send_wrapper(message):
            nonlocal status_code, response_body
            if message["type"] == "http.response.start":
                status_code = message.get("status", DEFAULT_STATUS_CODE)
                headers = list(message.get("headers", []))
                headers.append([b"x-request-id", request_id.encode()])
                message["headers"] = headers
            elif message["type"] == "http.response.body" and 400 <= status_code < 500:
                body = message.get("body", b"")
                if body:
                    try:
                        response_body = body.decode("utf-8")[:_MAX_LOGGED_BODY]
                    except UnicodeDecodeError:
                        pass
            await send(message)

        log_extra = {
            "request_id": request_id,
            "method": method,
            "path": path,
            "client_ip": client_host,
        }
        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            logger.error(
                "Request failed with exception",
                extra={**log_extra, "error": str(e), "event": "request_exception"},
                exc_info=True,
            )
            raise
        finally:
            log_extra.update({
                "status_code": status_code,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "event": "request_complete",
            })
            if status_code >= 500:
                logger.error("Request completed with server error", extra=log_extra)
            elif status_code >= 400:
                if response_body:
                    log_extra["response_body"] = _sanitize_response_body(response_body)
                logger.warning("Request completed with client error", extra=log_extra)
            else:
                logger.info("Request completed successfully", extra=log_extra)
