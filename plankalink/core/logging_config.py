"""
Simple logging configuration.
"""
import logging
import logging.handlers
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional


class LogCategory(str, Enum):
    """Enumeration for standardized log categories."""
    APP = "app"
    REQUEST = "app.request"
    USER_ACTIONS = "app.user_actions"
    ERRORS = "app.errors"
    DB = "app.db"
    SECURITY = "app.security"
    PLANKA = "app.planka"


DEFAULT_LOG_LEVEL = logging.INFO

# Fields that should be masked in logs
SENSITIVE_FIELDS = {
    'password',
    'token',
    'accesstoken',
    'access_token',
    'authorization',
    'secret',
    'secret_key',
    'api_key',
    'database_url',
    'cookie',
}


def _sanitize_data(data):
    """
    Sanitize data to mask sensitive fields.

    Recursively processes dictionaries, lists, and strings to mask sensitive information.
    For URLs, attempts to mask credentials in connection strings.
    """
    if data is None:
        return data

    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                sanitized[key] = '***MASKED***'
            else:
                sanitized[key] = _sanitize_data(value)
        return sanitized

    if isinstance(data, list):
        return [_sanitize_data(item) for item in data]

    if isinstance(data, str):
        if '@' in data and '://' in data:
            try:
                scheme_part, rest = data.split('://', 1)
                if '@' in rest:
                    user_pass, host_part = rest.rsplit('@', 1)
                    if ':' in user_pass:
                        user, _ = user_pass.split(':', 1)
                        return f"{scheme_part}://{user}:***@{host_part}"
                    return f"{scheme_part}://{user_pass}@{host_part}"
            except (ValueError, IndexError):
                pass

        # Very long opaque strings are most likely tokens (JWTs included)
        if len(data) > 64 and all(c.isalnum() or c in '-_.' for c in data):
            return '***MASKED***'

        return data

    return data


def _resolve_log_level(level_value, default=DEFAULT_LOG_LEVEL):
    """Resolve string/integer log level inputs to a logging level."""
    if isinstance(level_value, str):
        candidate = level_value.strip()
        if not candidate:
            return default, True
        if candidate.isdigit():
            level_value = int(candidate)
        else:
            candidate = candidate.upper()
            try:
                return logging._checkLevel(candidate), False
            except (ValueError, TypeError):
                return default, True
    try:
        return logging._checkLevel(level_value), False
    except (ValueError, TypeError):
        return default, True


def _get_settings():
    """Lazy import to avoid circular dependency with config module."""
    from plankalink.core.config import settings  # local import to break circular dependency
    return settings


def setup_logging():
    """Setup logging configuration."""
    settings = _get_settings()

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    # Clear existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    resolved_level, used_default_level = _resolve_log_level(settings.log_level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(resolved_level)

    log_file = Path(settings.log_file) if settings.log_file else log_dir / "app.log"
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(resolved_level)

    root_logger.setLevel(resolved_level)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    logging.getLogger(LogCategory.APP).setLevel(resolved_level)
    logging.getLogger(LogCategory.PLANKA).setLevel(resolved_level)
    logging.getLogger(LogCategory.SECURITY).setLevel(logging.INFO)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if used_default_level:
        logger.warning(
            "Invalid log level '%s' in configuration, falling back to INFO",
            settings.log_level
        )
    logger.info(
        "Logging configured - Level: %s",
        logging.getLevelName(resolved_level)
    )
    logger.info(f"File logging: {log_file}")


def _log_with_context(logger: logging.Logger, level: int, message: str, request_id: str = None, exc_info: bool = False, **kwargs):
    """Internal helper to format logs with an optional request ID and extra context.

    Args:
        logger: Logger instance to use
        level: Logging level
        message: Log message
        request_id: Optional request ID for context
        exc_info: Whether to include exception traceback
        **kwargs: Additional context appended to the message (e.g., user_id).
                  Sensitive fields are masked.
    """
    log_message = f"[{request_id}] {message}" if request_id else message

    if kwargs:
        sanitized_kwargs = _sanitize_data(kwargs)
        extra_context = ", ".join(f"{k}={v}" for k, v in sanitized_kwargs.items())
        log_message = f"{log_message} ({extra_context})"

    logger.log(level, log_message, exc_info=exc_info)


def log_user_action(user_email: str, action: str, request_id: str = None, **kwargs):
    """Log user actions with request ID."""
    logger = logging.getLogger(LogCategory.USER_ACTIONS)
    message = f"User {user_email} {action}"
    _log_with_context(logger, logging.INFO, message, request_id, **kwargs)


def log_planka_call(method: str, path: str, outcome: str, request_id: str = None, **kwargs):
    """Log an outbound Planka API call (issued, completed, failed)."""
    logger = logging.getLogger(LogCategory.PLANKA)
    level = logging.WARNING if outcome == "failed" else logging.INFO
    message = f"Planka {method} {path} {outcome}"
    _log_with_context(logger, level, message, request_id, **kwargs)


def log_info(message: str, request_id: str = None, **kwargs):
    """Log info messages with request ID."""
    logger = logging.getLogger(LogCategory.APP)
    _log_with_context(logger, logging.INFO, message, request_id, **kwargs)


def log_debug(message: str, request_id: str = None, **kwargs):
    """Log debug messages with request ID."""
    logger = logging.getLogger(LogCategory.APP)
    _log_with_context(logger, logging.DEBUG, message, request_id, **kwargs)


def log_warning(message: str, request_id: str = None, **kwargs):
    """Log warning messages with request ID."""
    logger = logging.getLogger(LogCategory.APP)
    _log_with_context(logger, logging.WARNING, message, request_id, **kwargs)


def log_error(error: Exception | str, request_id: str = None, user_email: str = None, **kwargs):
    """Log errors with request ID.

    Args:
        error: Exception object or error message string
        request_id: Optional request ID for context
        user_email: Optional user email for context
        **kwargs: Additional context (e.g., user_id)
    """
    logger = logging.getLogger(LogCategory.ERRORS)
    user_info = f" (user: {user_email})" if user_email else ""
    message = f"Error: {str(error)}{user_info}"
    exc_info = isinstance(error, Exception)
    _log_with_context(logger, logging.ERROR, message, request_id, exc_info=exc_info, **kwargs)


class RateLimitedLogger:
    """
    Emits each message key at most once per interval.

    State lives on the instance, so each owner (a gate, a service) keeps its own
    suppression window.

    Usage:
        limited = RateLimitedLogger(interval_seconds=300)
        limited.warning("planka-disabled", "Planka integration is not enabled")
    """

    def __init__(
        self,
        interval_seconds: float = 300.0,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval_seconds = interval_seconds
        self._logger = logger or logging.getLogger(LogCategory.APP)
        self._clock = clock
        self._last_emitted: Dict[str, float] = {}

    def should_log(self, key: str) -> bool:
        """Return True and start a new window if key has not been emitted within the interval."""
        now = self._clock()
        last = self._last_emitted.get(key)
        if last is not None and now - last < self.interval_seconds:
            return False
        self._last_emitted[key] = now
        return True

    def log(self, level: int, key: str, message: str, **kwargs) -> bool:
        if not self.should_log(key):
            return False
        _log_with_context(self._logger, level, message, **kwargs)
        return True

    def info(self, key: str, message: str, **kwargs) -> bool:
        return self.log(logging.INFO, key, message, **kwargs)

    def warning(self, key: str, message: str, **kwargs) -> bool:
        return self.log(logging.WARNING, key, message, **kwargs)

    def reset(self) -> None:
        self._last_emitted.clear()
