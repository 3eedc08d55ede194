"""Service configuration, read from the environment and an optional .env file.

The API process and the scheduler worker both build the engine from the
same Settings, so every engine knob lives here.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: str = "crmflow"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # HTTP surface
    cors_origins: str = "http://localhost:3000"
    tenant_header_name: str = "X-Tenant-ID"
    request_id_header: str = "X-Request-ID"

    # Postgres (asyncpg). Empty means no database: health checks and tests only.
    database_url: str = ""
    database_echo: bool = False
    db_pool_size: int = Field(default=10, ge=1)
    db_max_overflow: int = Field(default=20, ge=0)
    db_command_timeout: int = Field(default=60, ge=1)

    # Action execution
    action_timeout_seconds: float = Field(default=30.0, gt=0)
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)
    max_action_attempts: int = Field(default=3, ge=1)
    retry_backoff_minutes: int = Field(default=5, ge=1)

    # Due-tick processing
    scheduler_enabled: bool = False
    scheduler_poll_seconds: float = Field(default=30.0, gt=0)
    due_batch_size: int = Field(default=200, ge=1, le=5000)
    due_worker_concurrency: int = Field(default=4, ge=1, le=64)
    due_lease_seconds: int = Field(default=300, ge=10)
    snapshot_scan_limit: int = Field(default=1000, ge=1)  # page size when a Scheduled workflow scans records

    # Tracing
    telemetry_enabled: bool = False
    telemetry_exporter: Literal["console", "otlp", "none"] = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    telemetry_environment: str = "development"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def validate_scheduler(self) -> "Settings":
        # Deferred actions and cron ticks are durable rows.
        if self.scheduler_enabled and not self.database_url:
            raise ValueError("SCHEDULER_ENABLED=true needs DATABASE_URL to be set")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide Settings, validated on first call.

    Tests that change the environment call get_settings.cache_clear() first.
    """
    return Settings()
