"""Application settings and configuration.

This module defines all configuration options for the Replied service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Only the encryption key is mandatory, and it is enforced when the
    application starts rather than at import time so tooling can load the
    settings module without secrets present.
    """

    # Application metadata
    app_name: str = Field(default="Replied", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./replied.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # At-rest encryption (hex-encoded 32-byte AES key)
    encryption_key: str | None = Field(default=None, alias="ENCRYPTION_KEY")
    reject_on_seal_failure: bool = Field(default=False, alias="REJECT_ON_SEAL_FAILURE")

    # Rate limiting; an empty REDIS_URL disables limiting, "memory://" keeps
    # counters in-process (single worker only).
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    rate_limit_max_messages: int = Field(default=5, alias="RATE_LIMIT_MAX_MESSAGES")
    rate_limit_window_seconds: int = Field(default=600, alias="RATE_LIMIT_WINDOW_SECONDS")

    # Proxies whose X-Forwarded-For header is believed when keying the rate
    # limiter. Empty trusts nobody; "*" trusts every hop.
    trusted_proxies: list[str] = Field(default_factory=list, alias="TRUSTED_PROXIES")

    # Submission pipeline
    submission_timeout_seconds: float = Field(default=10.0, alias="SUBMISSION_TIMEOUT_SECONDS")
    extra_banned_terms: list[str] = Field(default_factory=list, alias="EXTRA_BANNED_TERMS")

    # Identity provider
    identity_jwt_secret: str | None = Field(default=None, alias="IDENTITY_JWT_SECRET")
    identity_jwt_algorithm: str = Field(default="HS256", alias="IDENTITY_JWT_ALGORITHM")
    identity_jwt_audience: str | None = Field(
        default="authenticated",
        alias="IDENTITY_JWT_AUDIENCE",
    )
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_role_key: str | None = Field(
        default=None,
        alias="SUPABASE_SERVICE_ROLE_KEY",
    )
    identity_http_timeout_seconds: float = Field(
        default=5.0,
        alias="IDENTITY_HTTP_TIMEOUT_SECONDS",
    )

    # Notification delivery
    resend_api_key: str | None = Field(default=None, alias="RESEND_API_KEY")
    notify_api_url: str = Field(default="https://api.resend.com/emails", alias="NOTIFY_API_URL")
    notify_from_address: str = Field(
        default="Replied <noreply@marvlock.dev>",
        alias="NOTIFY_FROM_ADDRESS",
    )
    notify_timeout_seconds: float = Field(default=10.0, alias="NOTIFY_TIMEOUT_SECONDS")
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("redis_url", "resend_api_key", "identity_jwt_secret", "supabase_url")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        """Treat empty strings from the environment as unset."""
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def rate_limiting_enabled(self) -> bool:
        """Return True when a counter store has been configured."""
        return self.redis_url is not None

    @property
    def notifications_enabled(self) -> bool:
        """Return True when a delivery credential is present."""
        return bool(self.resend_api_key)


settings = Settings()
