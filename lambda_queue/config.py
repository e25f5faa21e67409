"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from lambda_queue.constants import (
    DEFAULT_LAMBDA_API_VERSION,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REDIS_HOST,
    DEFAULT_REDIS_PORT,
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS Lambda
    aws_region: str | None = None
    aws_lambda_version: str = DEFAULT_LAMBDA_API_VERSION
    lambda_endpoint_url: str | None = None  # e.g. LocalStack

    # Redis broker
    redis_host: str = DEFAULT_REDIS_HOST
    redis_port: int = DEFAULT_REDIS_PORT

    # Worker Configuration
    queues: Annotated[list[str], NoDecode] = []
    max_retries: int = DEFAULT_MAX_RETRIES
    worker_concurrency: int = 1
    shutdown_timeout_seconds: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS
    recover_stalled_jobs: bool = True

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    metrics_enabled: bool = False
    prometheus_port: int = 9090
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "lambda-queue-worker"

    @field_validator("queues", mode="before")
    @classmethod
    def split_queue_names(cls, value: object) -> object:
        """Accept a comma-separated string of queue names."""
        if isinstance(value, str):
            return [name.strip() for name in value.split(",") if name.strip()]
        return value

    @field_validator("max_retries")
    @classmethod
    def check_max_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_retries must be >= 0")
        return value

    @field_validator("worker_concurrency")
    @classmethod
    def check_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("worker_concurrency must be >= 1")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
