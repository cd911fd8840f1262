"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="Async SQLAlchemy connection string (asyncpg in production)",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # JWT
    jwt_secret_key: str = Field(min_length=32, description="Secret key for signing JWTs (minimum 32 characters)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_access_token_expire_minutes: int = Field(
        default=30,
        description="Access token expiration in minutes",
        gt=0,
    )

    # Transfer jobs
    transfer_batch_size: int = Field(
        default=200,
        description="Records per export/import batch; bounds cancellation latency",
        gt=0,
        le=5000,
    )
    max_concurrent_operations: int = Field(
        default=3,
        description="Maximum in-flight (pending or running) operations per user and kind",
        gt=0,
    )
    import_max_file_size_mb: int = Field(
        default=10,
        description="Maximum import upload size in megabytes",
        gt=0,
    )
    import_max_reported_errors: int = Field(
        default=1000,
        description="Maximum record errors kept in an import result (counts stay exact)",
        gt=0,
    )

    # Artifacts
    export_dir: str = Field(
        default="./exports",
        description="Directory for generated export artifacts",
    )
    artifact_retention_hours: int = Field(
        default=720,
        description="Hours an export artifact stays downloadable",
        gt=0,
    )
    operation_retention_days: int | None = Field(
        default=None,
        description="When set, the retention sweep also deletes terminal operations older than this",
        gt=0,
    )
    retention_sweep_enabled: bool = Field(
        default=True,
        description="Enable the background retention sweep loop",
    )
    retention_sweep_interval: int = Field(
        default=3600,
        description="Seconds between retention sweeps",
        ge=60,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )
    cors_origin_regex: str = Field(
        default="",
        description="Regex pattern for allowed CORS origins",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment name (e.g. production, dev, staging)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )

    @property
    def import_max_file_size_bytes(self) -> int:
        """Upload size cap in bytes."""
        return self.import_max_file_size_mb * 1024 * 1024

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
