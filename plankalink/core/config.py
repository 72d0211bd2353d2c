"""
Application configuration using pydantic-settings.
"""
import logging
import os
import secrets
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import field_validator, model_validator, ValidationInfo, Field
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

# Insecure default that should never be used in production
_INSECURE_DEFAULT_SECRET = "your-super-secret-key-change-in-production"
DEFAULT_SQLITE_URL = "sqlite:///./plankalink.db"

# Define the project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent.resolve()


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Planka Link Service"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # API
    api_v1_prefix: str = "/api/v1"
    enable_cors: bool = False
    cors_origins: Annotated[Optional[List[str]], NoDecode] = None

    # Database
    database_url: str = DEFAULT_SQLITE_URL

    # Security
    secret_key: str = ""  # Must be set via environment variable
    access_token_expire_minutes: int = 60
    algorithm: str = "HS256"

    # Planka integration
    # Both PLANKA_BASE_URL and PLANKA_INTEGRATION_ENABLED=true are required to activate the feature.
    planka_base_url: Optional[str] = None
    planka_integration_enabled: bool = False
    planka_request_timeout_seconds: float = 15.0
    planka_probe_timeout_seconds: float = 5.0
    # Accounts created through Planka login get a hash of the Planka password when true.
    # A compromise of Planka credentials then also opens the local account.
    planka_derive_local_password: bool = True
    planka_revoke_token_on_unlink: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_dir: str = "./logs"

    # Rate limiting
    rate_limiting_enabled: bool = Field(
        default_factory=lambda: os.getenv("RATE_LIMITING_ENABLED", "false" if os.getenv("ENVIRONMENT") == "test" else "true").lower() == "true"
    )
    rate_limit_storage_uri: str = "memory://"
    planka_login_rate_limit: str = "10/minute"

    # Client IPs refused on public auth endpoints
    banned_ips: Annotated[Optional[List[str]], NoDecode] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def planka_enabled(self) -> bool:
        """Planka integration is active only when a base URL is configured and the switch is on."""
        return bool(self.planka_base_url) and self.planka_integration_enabled

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str, info: ValidationInfo) -> str:
        """Validate SECRET_KEY is set and secure."""
        if not v:
            env = info.data.get('environment', 'development')
            if env == 'production':
                raise ValueError(
                    "SECRET_KEY must be set in production! "
                    "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
                )
            logger.warning(
                "SECRET_KEY not set! Using auto-generated key for development. "
                "This key will change on restart and stored Planka tokens will become unreadable."
            )
            return secrets.token_urlsafe(32)

        if v == _INSECURE_DEFAULT_SECRET:
            logger.warning(
                "Using insecure default SECRET_KEY! "
                "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        elif len(v) < 32:
            logger.warning(
                f"SECRET_KEY is only {len(v)} characters long. "
                "Recommend at least 32 characters for security."
            )

        return v

    @field_validator('planka_base_url', mode='before')
    @classmethod
    def normalize_planka_base_url(cls, v):
        """Strip whitespace and trailing slash; treat empty values as unset."""
        if v is None:
            return None
        url = str(v).strip()
        if not url:
            return None
        if not url.startswith(("http://", "https://")):
            raise ValueError(
                "PLANKA_BASE_URL must start with http:// or https://. "
                f"Got: {url}"
            )
        return url.rstrip('/')

    @field_validator('cors_origins', 'banned_ips', mode='before')
    @classmethod
    def parse_list_fields(cls, v):
        """Parse list fields from a comma-separated string or list."""
        if v is None:
            return []

        if isinstance(v, str):
            if not v.strip():
                return []
            v = v.strip('[]')
            return [item.strip().strip('"').strip("'") for item in v.split(',') if item.strip()]

        if isinstance(v, list):
            return v

        return []

    @field_validator('planka_request_timeout_seconds', 'planka_probe_timeout_seconds')
    @classmethod
    def validate_timeout_settings(cls, v: float) -> float:
        """Validate timeout settings are reasonable."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        if v > 300:
            raise ValueError("Timeout cannot exceed 300 seconds")
        return v

    @model_validator(mode='after')
    def validate_production_settings(self) -> 'Settings':
        """Production validation."""
        if self.environment != "production":
            return self

        errors = []

        if self.debug:
            errors.append("DEBUG must be False in production.")

        if self.enable_cors and not self.cors_origins:
            errors.append("CORS_ORIGINS must be configured when CORS is enabled.")

        if self.planka_base_url and self.planka_base_url.startswith("http://"):
            if "localhost" not in self.planka_base_url and "127.0.0.1" not in self.planka_base_url:
                logger.warning(
                    f"PLANKA_BASE_URL '{self.planka_base_url}' uses plain HTTP in production. "
                    "Planka passwords and tokens will travel unencrypted."
                )

        if errors:
            error_message = "Production configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_message)

        return self


# Create settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
