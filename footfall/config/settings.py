"""
Footfall Rollup Service
Centralized Configuration Management

Pydantic settings with environment variable support, validation and
type safety. Each subsystem reads its own env prefix.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="footfall", alias="POSTGRES_DB", description="Database name")
    user: str = Field(default="footfall", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    create_tables: bool = Field(default=True, description="Create missing tables on startup")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL, DATABASE_URL wins when set"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class UpstreamSettings(BaseSettings):
    """DisplayForce analytics API configuration"""

    model_config = SettingsConfigDict(env_prefix="DISPLAYFORCE_")

    base_url: str = Field(
        default="https://api.displayforce.ai/public/v1",
        description="Upstream API base URL",
    )
    token: Optional[SecretStr] = Field(default=None, description="Upstream API token")
    page_size: int = Field(default=500, gt=0, description="Visitors requested per page")
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout per request")

    @property
    def is_configured(self) -> bool:
        return self.token is not None and bool(self.token.get_secret_value())


class RollupSettings(BaseSettings):
    """Rollup cache and refresh scheduling"""

    model_config = SettingsConfigDict(env_prefix="ROLLUP_")

    staleness_window_seconds: int = Field(default=300, description="Age after which today's rollup is stale")
    refresh_interval_seconds: int = Field(default=300, description="Recurring refresh cadence for today")
    backfill_days: int = Field(default=3, ge=0, description="Days before today backfilled at startup")
    startup_delay_seconds: float = Field(default=5.0, description="Delay before scheduled loops start")
    queue_size: int = Field(default=100, gt=0, description="Background refresh queue capacity")
    workers: int = Field(default=2, gt=0, description="Background refresh workers")
    scheduler_enabled: bool = Field(default=True, description="Run startup backfill and recurring refresh")
    unknown_gender_default: str = Field(
        default="F",
        description="Gender assigned to events whose upstream code is not recognised",
    )

    @field_validator("unknown_gender_default")
    @classmethod
    def validate_gender_default(cls, v: str) -> str:
        """Only the two canonical gender codes are allowed"""
        if v.upper() not in ("M", "F"):
            raise ValueError("unknown_gender_default must be 'M' or 'F'")
        return v.upper()


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="footfall-rollups", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    rollup: RollupSettings = Field(default_factory=RollupSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
