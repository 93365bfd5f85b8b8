"""Centralized configuration for Secudo.

Uses Pydantic BaseSettings with environment variable loading and validation.
All SEC_* environment variables are validated at import time.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = {"env_prefix": "SEC_", "case_sensitive": False, "extra": "ignore"}

    # Storage
    db_path: str = Field(default="secudo.db", description="SQLite database path")
    migrations_enabled: bool = Field(default=True, description="Run SQL migrations on startup")

    # Auth
    jwt_secret: str = Field(default="", description="HS256 secret for session tokens")
    jwt_expiry_seconds: int = Field(
        default=7 * 24 * 3600, ge=60, description="Session token lifetime in seconds"
    )
    initial_admin_email: str = Field(
        default="admin@admin.com", description="Email of the bootstrap Admin account"
    )
    initial_admin_password: str | None = Field(
        default=None, description="Password of the bootstrap Admin (unset = no bootstrap)"
    )

    # Logging
    log_format: str = Field(default="text", description="Log format: text or json")
    log_level: str = Field(default="INFO", description="Python log level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")  # noqa: S104
    port: int = Field(default=8000, ge=1, le=65535, description="Server bind port")

    # CORS
    cors_origins: str = Field(default="*", description="Comma-separated CORS origins")

    # Rate limiting
    rate_limit: str = Field(
        default="100/minute",
        description="Default rate limit (e.g., 100/minute). Set to 'none' to disable.",
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "json"):
            msg = f"SEC_LOG_FORMAT must be 'text' or 'json', got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        import logging

        v = v.upper()
        if not hasattr(logging, v):
            msg = f"SEC_LOG_LEVEL must be a valid Python log level, got '{v}'"
            raise ValueError(msg)
        return v

    @property
    def cors_origin_list(self) -> list[str]:
        """Return parsed list of CORS origins."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Validated once at import time.
settings = Settings()
