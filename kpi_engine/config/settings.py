"""
Business Metrics Engine
Centralized Configuration Management

Pydantic settings with environment variable support for the database read
side, the dashboard cache, logging, and the KPI thresholds used by the
aggregation engine.
"""

from functools import lru_cache
from typing import Literal, Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="shop", alias="POSTGRES_DB", description="Database name")
    user: str = Field(default="shop", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL queries")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format: json or text")


class MetricsSettings(BaseSettings):
    """KPI thresholds and dashboard composition limits"""

    model_config = SettingsConfigDict(env_prefix="METRICS_")

    default_timeframe: str = Field(default="30d", description="Timeframe used when none is given")
    default_group_by: Literal["day", "week", "month"] = Field(default="day", description="Sales trend bucket size")
    week_start: Literal["monday", "sunday"] = Field(default="monday", description="First day of a weekly bucket")

    # Segmentation
    vip_spend_threshold: int = Field(default=50000, description="Lifetime spend above which a customer is VIP")
    at_risk_days: int = Field(default=90, description="Days without an order before a customer is at risk")
    lost_days: int = Field(default=180, description="Days without an order before a customer is lost")
    active_customer_days: int = Field(default=90, description="Recency window for active customers")

    # Inventory
    default_minimum_stock: int = Field(default=10, description="Reorder point when a product has none")
    critical_stock_level: int = Field(default=5, description="Stock at or below which an alert is critical")

    # Rankings
    top_products_limit: int = Field(default=10, description="Products returned by the top products ranking")
    geography_limit: int = Field(default=10, description="Wilayas returned by the geographic breakdown")
    top_customers_limit: int = Field(default=10, description="Customers returned by the top customers ranking")
    recent_activity_limit: int = Field(default=5, description="Orders listed in the dashboard activity feed")

    # Composition
    composition_timeout_seconds: float = Field(default=30.0, description="Timeout around a whole dashboard composition")
    cache_enabled: bool = Field(default=True, description="Cache composed dashboards in redis")
    cache_ttl_seconds: int = Field(default=300, description="Dashboard cache TTL")

    # Record source
    data_dir: Optional[str] = Field(default=None, description="Directory of parquet/CSV record frames; unset reads PostgreSQL")

    @field_validator("lost_days")
    @classmethod
    def validate_recency_order(cls, v: int, info) -> int:
        """Lost must be a longer silence than at risk"""
        at_risk = info.data.get("at_risk_days")
        if at_risk is not None and v <= at_risk:
            raise ValueError("lost_days must be greater than at_risk_days")
        return v


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
    )

    # Application
    app_name: str = Field(default="kpi-engine", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

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
