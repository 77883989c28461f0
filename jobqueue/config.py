"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend store ("memory://" selects an in-process fakeredis server)
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "jobqueue"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Worker Configuration
    worker_concurrency: int = 1
    worker_block_timeout_seconds: float = 1.0
    worker_error_backoff_seconds: float = 1.0
    job_timeout_seconds: float | None = None

    # Retry policy
    default_max_attempts: int = 1
    requeue_failed_attempts: bool = True

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "jobqueue"
    prometheus_port: int = 9090
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
