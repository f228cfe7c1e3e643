"""
Tourbook API: Application Configuration
=======================================

What:  Centralized configuration management using Pydantic Settings.
How:   Values come from environment variables (or a .env file), are coerced
       and range-checked once at import time, and are exposed through the
       `settings` singleton.
Who:   Imported by every module that needs configuration values.

Security-sensitive values (JWT_SECRET, SMTP credentials, MONGODB_URL) have
development defaults only; `validate_required_for_production()` flags them
during startup.
"""

from datetime import timedelta
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEV_JWT_SECRET = "dev-only-secret-change-me-please-32chars"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes are grouped by concern for readability.
    """

    # ── Database ──────────────────────────────────────────────────────────
    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string",
    )
    mongodb_db: str = Field(default="tourbook")

    # Driver-level timeout; the application adds none of its own
    mongodb_server_selection_timeout_ms: int = Field(default=5000, ge=100, le=60000)

    # ── Authentication ────────────────────────────────────────────────────
    jwt_secret: str = Field(default=DEV_JWT_SECRET, min_length=16)
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_in_days: int = Field(default=2, ge=1, le=90)

    # Adaptive hash cost; tests lower it to keep the suite fast
    bcrypt_rounds: int = Field(default=12, ge=4, le=16)

    password_reset_expires_minutes: int = Field(default=10, ge=1, le=1440)

    @property
    def jwt_expires_in(self) -> timedelta:
        return timedelta(days=self.jwt_expires_in_days)

    @property
    def password_reset_expires_in(self) -> timedelta:
        return timedelta(minutes=self.password_reset_expires_minutes)

    # ── Mail ──────────────────────────────────────────────────────────────
    # Reset links are built as <public_base_url>/api/v1/users/reset-password/<token>
    public_base_url: str = Field(default="http://localhost:8000")
    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=25, ge=1, le=65535)
    smtp_username: str = Field(default="")
    smtp_password: str = Field(default="")
    smtp_use_tls: bool = Field(default=False)
    email_from: str = Field(default="Tourbook <hello@tourbook.io>")

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Retry Configuration (SMTP delivery) ───────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: int = Field(default=1, ge=0, le=30)
    retry_max_wait: int = Field(default=10, ge=1, le=120)

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Per-client sliding window over /api paths: 100 requests per hour
    rate_limit_requests: int = Field(default=100, ge=1, le=100000)
    rate_limit_window: int = Field(default=3600, ge=1, le=86400)  # seconds

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def validate_required_for_production(self) -> None:
        """
        Validates that critical settings are configured.

        Called during app startup (lifespan). Raises ValueError listing every
        problem so the operator can fix them in one pass.
        """
        errors = []
        if self.jwt_secret == DEV_JWT_SECRET:
            errors.append(
                "JWT_SECRET is using the development default. "
                "Set a long random value before deploying."
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


settings = Settings()
