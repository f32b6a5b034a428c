"""Configuration management for Courier."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Courier configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the COURIER_ prefix. For example:
        COURIER_DATABASE_URL=sqlite+aiosqlite:///./data/webhooks.db
        COURIER_RETRY_DELAY_MS=1000
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    storage_backend: Literal["sql", "memory"] = Field(
        default="sql",
        description="Delivery store: 'sql' (SQLAlchemy async) or 'memory' (process-local)",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/webhooks.db",
        description="SQLAlchemy async database URL for the sql backend",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)",
    )

    # Delivery
    webhook_max_retries: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Default maximum delivery attempts for new endpoints",
    )
    retry_delay_ms: int = Field(
        default=5000,
        ge=1,
        description="Base retry delay in milliseconds (doubles each attempt)",
    )
    max_retry_delay_ms: int = Field(
        default=86_400_000,
        ge=1,
        description="Upper bound for a single retry delay (24 hours)",
    )
    delivery_timeout_ms: int = Field(
        default=30_000,
        ge=100,
        description="HTTP timeout for a single delivery attempt",
    )
    user_agent: str = Field(
        default="Courier-Webhook/1.0",
        description="User-Agent header sent with every delivery",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        description="Maximum characters of the receiver's response body kept in the ledger",
    )

    # Scheduler
    scheduler_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between scheduler ticks",
    )
    scheduler_batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum queue entries claimed per tick",
    )
    scheduler_concurrency: int = Field(
        default=1,
        ge=1,
        le=100,
        description=(
            "Deliveries dispatched concurrently within a tick. "
            "1 keeps dispatch sequential and bounds outbound connections."
        ),
    )

    # Retention
    retention_days: int = Field(
        default=30,
        ge=1,
        description="Days to keep delivered/failed ledger rows",
    )
    retention_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds between retention sweeps",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "COURIER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "Settings":
        """The backoff cap cannot be lower than the base delay."""
        if self.max_retry_delay_ms < self.retry_delay_ms:
            raise ValueError(
                f"max_retry_delay_ms ({self.max_retry_delay_ms}) must be greater than or "
                f"equal to retry_delay_ms ({self.retry_delay_ms})."
            )
        return self

    @property
    def delivery_timeout_seconds(self) -> float:
        """Delivery timeout expressed in seconds for httpx."""
        return self.delivery_timeout_ms / 1000

