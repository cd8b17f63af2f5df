"""Application settings loaded from environment variables via Pydantic."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """Central configuration for the billing engine service."""

    model_config = {"env_prefix": "BILLING_", "case_sensitive": False}

    # Storage: "sql" uses the database below, "memory" the in-process adapters
    storage_backend: Literal["sql", "memory"] = "sql"

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "billing"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    # Full SQLAlchemy URL; overrides the postgres_* parts when set.
    database_url: str = ""

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    # Billing runs
    max_concurrency: int = Field(default=8, ge=1)
    skip_empty_invoices: bool = True

    # Prometheus (0 disables the exporter)
    metrics_port: int = 0

    # Logging
    log_level: str = "INFO"


def get_settings() -> AppSettings:
    """Return the application settings singleton."""
    return AppSettings()
