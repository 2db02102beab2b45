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
        description="Async SQLAlchemy connection string for the job store and target tables",
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

    # Batch sizes per job type
    import_batch_size: int = Field(
        default=100,
        description="Rows per chunk for CSV import jobs",
        ge=1,
        le=5000,
    )
    resync_batch_size: int = Field(
        default=50,
        description="Records per page for CRM resync jobs",
        ge=1,
        le=500,
    )
    export_batch_size: int = Field(
        default=500,
        description="Records per chunk for export jobs",
        ge=1,
        le=5000,
    )

    # Job engine
    heartbeat_interval: float = Field(
        default=2.0,
        description="Minimum seconds between persisted progress heartbeats",
        gt=0,
    )
    status_check_every: int = Field(
        default=10,
        description="Re-read the persisted job status every N chunks",
        gt=0,
    )
    max_error_entries: int = Field(
        default=100,
        description="Maximum entries kept in a job's error log",
        gt=0,
    )
    max_consecutive_write_failures: int = Field(
        default=5,
        description="Consecutive connectivity failures before a job is failed",
        gt=0,
    )
    stale_job_timeout: int = Field(
        default=900,
        description="Seconds without a heartbeat before a processing job is considered orphaned",
        gt=0,
    )

    # Uploads
    upload_dir: str = Field(
        default="./uploads",
        description="Directory where uploaded CSV files are kept until their job succeeds",
    )
    max_upload_bytes: int = Field(
        default=2 * 1024 * 1024 * 1024,
        description="Hard ceiling for uploaded source files in bytes",
        gt=0,
    )

    # CRM (Bitrix-style REST)
    crm_base_url: str | None = Field(
        default=None,
        description="Base URL of the CRM REST webhook (e.g. https://example.bitrix24.com/rest/1/token)",
    )
    crm_lead_method: str = Field(
        default="crm.lead.list",
        description="CRM REST method used to list leads",
    )
    crm_timeout: float = Field(
        default=30.0,
        description="CRM request timeout in seconds",
        gt=0,
    )
    crm_page_size: int = Field(
        default=50,
        description="Records returned per CRM page (fixed at 50 by Bitrix)",
        gt=0,
    )

    # API
    api_key: str | None = Field(
        default=None,
        description="When set, requests must send this value in the X-API-Key header",
    )
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version 1 route prefix",
    )
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins",
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

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
