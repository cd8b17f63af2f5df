"""Celery application configuration for the billing engine.

Sets up the broker, result backend, serialisation, task routing, retry
policies and the monthly invoice-generation schedule.
"""

from __future__ import annotations

from celery import Celery, signals
from celery.schedules import crontab

from infrastructure.observability.logging_config import setup_logging
from infrastructure.observability.metrics import start_metrics_server
from infrastructure.settings import get_settings

_settings = get_settings()

app = Celery("billing_engine")

# ---------------------------------------------------------------------------
# Broker and result backend
# ---------------------------------------------------------------------------

app.conf.broker_url = _settings.celery_broker_url
app.conf.result_backend = _settings.celery_result_backend

# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

app.conf.accept_content = ["json"]
app.conf.task_serializer = "json"
app.conf.result_serializer = "json"

# ---------------------------------------------------------------------------
# Task routing
# ---------------------------------------------------------------------------

app.conf.task_routes = {
    "application.tasks.billing_tasks.*": {"queue": "billing"},
}

# ---------------------------------------------------------------------------
# Default retry policy
# ---------------------------------------------------------------------------

app.conf.task_annotations = {
    "*": {
        "max_retries": 3,
        "default_retry_delay": 60,
        "retry_backoff": True,
        "retry_backoff_max": 600,
        "retry_jitter": True,
    },
}

# ---------------------------------------------------------------------------
# Schedule: previous month's invoices, 02:00 UTC on the 1st
# ---------------------------------------------------------------------------

app.conf.beat_schedule = {
    "generate-monthly-invoices": {
        "task": "application.tasks.billing_tasks.generate_invoices_for_period",
        "schedule": crontab(minute=0, hour=2, day_of_month=1),
    },
}

# ---------------------------------------------------------------------------
# Miscellaneous
# ---------------------------------------------------------------------------

app.conf.task_acks_late = True
app.conf.worker_prefetch_multiplier = 1
app.conf.task_track_started = True
app.conf.task_time_limit = 3600  # hard limit: 1 hour
app.conf.task_soft_time_limit = 3300  # soft limit: 55 minutes
app.conf.timezone = "UTC"

# ---------------------------------------------------------------------------
# Worker hooks
# ---------------------------------------------------------------------------


@signals.setup_logging.connect
def _configure_logging(**_: object) -> None:
    setup_logging(_settings.log_level)


@signals.worker_init.connect
def _start_metrics(**_: object) -> None:
    start_metrics_server(_settings.metrics_port)


# ---------------------------------------------------------------------------
# Autodiscovery
# ---------------------------------------------------------------------------

app.autodiscover_tasks(["application.tasks.billing_tasks"])
