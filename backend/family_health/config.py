from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_production_secrets(self) -> "Settings":
        """Fail fast if production is running with insecure defaults."""
        if self.app_env != "development":
            if self.jwt_secret_key == "change-me-in-production":
                raise ValueError(
                    "JWT_SECRET_KEY must be changed from default in non-development environments"
                )
        return self

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/family_health_tracker"
    database_pool_size: int = 20

    # Auth
    jwt_secret_key: str = "change-me-in-production"
    jwt_access_token_expire_days: int = 7

    # File Storage
    upload_dir: str = "./data/uploads"
    max_file_size_mb: int = Field(default=20, gt=0)

    # Rate limiting
    rate_limit_general_window_ms: int = Field(default=15 * 60 * 1000, gt=0)
    rate_limit_general_max: int = Field(default=100, gt=0)
    rate_limit_general_message: str = "Too many requests, please try again later."

    rate_limit_auth_window_ms: int = Field(default=15 * 60 * 1000, gt=0)
    rate_limit_auth_max: int = Field(default=100, gt=0)
    rate_limit_auth_message: str = "Too many authentication attempts, please try again later."

    rate_limit_upload_window_ms: int = Field(default=60 * 1000, gt=0)
    rate_limit_upload_max: int = Field(default=50, gt=0)
    rate_limit_upload_message: str = "Too many file uploads, please try again later."

    rate_limit_sweep_interval_seconds: float = Field(default=5 * 60, gt=0)
    # "shared" buckets callers without a resolvable address under one key,
    # "reject" refuses them outright.
    rate_limit_missing_identifier: Literal["shared", "reject"] = "shared"

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000"


settings = Settings()
