"""
Prometheus metrics for billing runs.

Module-level singletons registered on the default registry; a worker
process exposes them with :func:`start_metrics_server`.
"""

from __future__ import annotations

from prometheus_client import REGISTRY, Counter, Histogram, start_http_server

# ======================================================================
# Custom metrics (module-level singletons)
# ======================================================================

invoices_generated_total = Counter(
    "invoices_generated_total",
    "Invoice generation attempts by outcome",
    labelnames=["outcome"],
    registry=REGISTRY,
)

invoice_generation_duration_seconds = Histogram(
    "invoice_generation_duration_seconds",
    "Time to calculate and persist one organisation's invoice",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)

billing_run_failures_total = Counter(
    "billing_run_failures_total",
    "Organisations whose invoice could not be produced, by error code",
    labelnames=["code"],
    registry=REGISTRY,
)


def start_metrics_server(port: int) -> None:
    """Serve the Prometheus exposition format on *port* (0 disables)."""
    if port:
        start_http_server(port, registry=REGISTRY)
