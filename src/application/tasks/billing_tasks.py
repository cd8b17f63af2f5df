"""Background Celery tasks for invoice generation."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

from application.tasks.celery_app import app
from domain.exceptions.billing_exceptions import DomainError, InvalidPeriodError, error_to_dict
from domain.models.period import BillingPeriod

logger = logging.getLogger(__name__)


def _period(month: int | None, year: int | None) -> BillingPeriod:
    if month is None and year is None:
        return BillingPeriod.previous(date.today())
    if month is None or year is None:
        raise InvalidPeriodError(month or 0, year or 0, "month and year must be given together")
    return BillingPeriod(month=month, year=year)


@app.task(  # type: ignore[untyped-decorator]
    name="application.tasks.billing_tasks.generate_invoices_for_period",
    bind=True,
    max_retries=3,
    default_retry_delay=300,
)
def generate_invoices_for_period(
    self: Any, month: int | None = None, year: int | None = None
) -> dict[str, Any]:
    """Invoice every active organisation for a period (default: last month).

    Per-organisation failures are part of the returned report; only a
    failure of the run itself (e.g. the database is unreachable) is retried.
    """
    from infrastructure.container import get_container

    try:
        period = _period(month, year)
    except DomainError as exc:
        logger.error("Rejected billing run: %s", exc.detail)
        return {"month": month, "year": year, "error": error_to_dict(exc)}

    logger.info("Generating invoices for %s", period)

    try:
        report = get_container().billing_run_service.run(period)
    except Exception as exc:
        logger.exception("Invoice generation run for %s failed", period)
        raise self.retry(exc=exc) from exc

    return report.to_dict()


@app.task(  # type: ignore[untyped-decorator]
    name="application.tasks.billing_tasks.generate_invoice",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def generate_invoice(self: Any, organisation_id: str, month: int, year: int) -> dict[str, Any]:
    """Generate (or re-check) one organisation's invoice for a period."""
    from infrastructure.container import get_container

    org_id = UUID(organisation_id)
    try:
        period = BillingPeriod(month=month, year=year)
        result = get_container().invoicing_service.generate_invoice(org_id, period)
    except DomainError as exc:
        # Configuration and consistency problems will not fix themselves.
        logger.error("Invoice for %s (%s-%s) not generated: %s", org_id, year, month, exc.detail)
        return {"organisation_id": organisation_id, "outcome": "failed", "error": error_to_dict(exc)}
    except Exception as exc:
        logger.exception("Invoice generation for %s failed", org_id)
        raise self.retry(exc=exc) from exc

    invoice = result.invoice
    return {
        "organisation_id": organisation_id,
        "outcome": result.outcome.value,
        "invoice_id": str(result.invoice_id) if result.invoice_id else None,
        "invoice_number": invoice.invoice_number if invoice else None,
        "total": str(invoice.total) if invoice else None,
    }
