"""Settings Management Module.

Loads the Indexing Service endpoints, service-account credentials and the
timeout/retry/polling knobs from the environment. A ``.env`` file (and
``.env.<APP_ENV>`` when ``APP_ENV`` is set) is loaded first.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from ..gateway.errors import ConfigurationError


class Settings(BaseModel):
    """Global application settings."""

    # Indexing Service endpoints
    base_url: str = Field("", description="Base URL of the Indexing Service API")
    auth_url: str = Field("", description="Base URL of the auth service")
    anon_key: str = Field("", description="Anonymous key sent with the password grant")

    # Service account (validated lazily at first authentication)
    email: Optional[str] = None
    password: Optional[str] = None

    # Optional override; resolved from /organizations/me/current otherwise
    org_id: Optional[str] = None

    # Gateway behaviour
    request_timeout_seconds: float = 30.0
    kb_request_timeout_seconds: float = 60.0
    get_retries: int = Field(2, ge=0, le=3)
    retry_backoff_seconds: float = 1.0
    kb_retry_backoff_seconds: float = 2.0

    # Status polling
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = Field(30, ge=1)

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    model_config = {"validate_assignment": True}

    @field_validator("base_url", "auth_url")
    @classmethod
    def _require_https(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if value and not value.startswith("https://"):
            raise ValueError("must be a valid HTTPS URL")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        load_dotenv()
        app_env = os.getenv("APP_ENV")
        if app_env:
            load_dotenv(dotenv_path=f".env.{app_env}", override=True)

        values = {
            "base_url": os.getenv("INDEXING_SERVICE_BASE_URL", ""),
            "auth_url": os.getenv("INDEXING_AUTH_URL", ""),
            "anon_key": os.getenv("INDEXING_AUTH_ANON_KEY", ""),
            "email": os.getenv("INDEXING_SERVICE_EMAIL") or None,
            "password": os.getenv("INDEXING_SERVICE_PASSWORD") or None,
            "org_id": os.getenv("INDEXING_ORG_ID") or None,
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "log_dir": os.getenv("LOG_DIR", "logs"),
        }
        numeric = {
            "request_timeout_seconds": "REQUEST_TIMEOUT_SECONDS",
            "kb_request_timeout_seconds": "KB_REQUEST_TIMEOUT_SECONDS",
            "get_retries": "GET_RETRIES",
            "retry_backoff_seconds": "RETRY_BACKOFF_SECONDS",
            "kb_retry_backoff_seconds": "KB_RETRY_BACKOFF_SECONDS",
            "poll_interval_seconds": "POLL_INTERVAL_SECONDS",
            "poll_max_attempts": "POLL_MAX_ATTEMPTS",
        }
        for field_name, env_name in numeric.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()

        return cls(**values)

    def require_credentials(self) -> tuple[str, str]:
        """Return the service-account credentials or fail loudly.

        Raises:
            ConfigurationError: If the email or password is missing.
        """
        missing = [
            name for name, value in (
                ("INDEXING_SERVICE_EMAIL", self.email),
                ("INDEXING_SERVICE_PASSWORD", self.password),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ConfigurationError(
                f"Missing server environment variables: {', '.join(missing)}"
            )
        return self.email, self.password

    def require_endpoints(self) -> None:
        """Fail if the Indexing Service or auth URL is not configured."""
        missing = [
            name for name, value in (
                ("INDEXING_SERVICE_BASE_URL", self.base_url),
                ("INDEXING_AUTH_URL", self.auth_url),
                ("INDEXING_AUTH_ANON_KEY", self.anon_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}"
            )


# Global Instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings(settings: Optional[Settings] = None) -> None:
    """Replace (or drop) the cached settings instance."""
    global _settings
    _settings = settings
