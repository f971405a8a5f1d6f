"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="occmetrics", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Redis
    redis_enabled: bool = Field(
        default=False, description="Use Redis pub/sub for change subscriptions"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Metrics cache
    cache_default_ttl_seconds: float = Field(
        default=300.0, description="TTL for regular metric types (5 minutes)"
    )
    cache_short_ttl_seconds: float = Field(
        default=60.0, description="TTL for near-real-time metric types (1 minute)"
    )
    cache_realtime_types: list[str] = Field(
        default=["dashboard", "realtime"],
        description="Metric types cached with the short TTL",
    )
    cache_sweep_interval_seconds: float = Field(
        default=600.0, description="Interval between expired-entry sweeps"
    )

    # Query strategies
    query_timeout_seconds: float = Field(
        default=30.0, description="Default provider read timeout"
    )
    query_retries: int = Field(
        default=3, description="Retries for retryable provider failures"
    )
    query_retry_base_delay_seconds: float = Field(
        default=1.0, description="Base delay for exponential retry backoff"
    )
    query_retry_max_delay_seconds: float = Field(
        default=10.0, description="Upper bound for a single retry backoff delay"
    )
    analytics_timeout_seconds: float = Field(
        default=45.0, description="Timeout for the analytics aggregation read"
    )
    pagination_default_page_size: int = Field(
        default=20, description="Page size when none is requested"
    )
    pagination_max_page_size: int = Field(
        default=100, description="Largest page size accepted"
    )
    batch_max_size: int = Field(
        default=10, description="Maximum number of sub-queries per batch"
    )

    # Risk model
    high_risk_threshold: float = Field(
        default=80.0, description="Risk percentage counted as high risk in trends"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
