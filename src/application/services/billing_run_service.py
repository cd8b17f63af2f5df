"""Billing run orchestration.

Generates invoices for many organisations for one period. Organisations are
independent: each runs on its own worker with its own snapshot, and one
organisation's failure is recorded in the report without stopping the rest.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import structlog

from application.services.invoicing_service import InvoiceOutcome
from domain.exceptions.billing_exceptions import error_to_dict
from infrastructure.observability.metrics import (
    billing_run_failures_total,
    invoice_generation_duration_seconds,
    invoices_generated_total,
)

if TYPE_CHECKING:
    from application.services.invoicing_service import InvoicingService
    from domain.models.period import BillingPeriod

logger = logging.getLogger(__name__)

FAILED = "failed"
HIGH_FAILURE_RATE = 0.1


class OrganisationRepository(Protocol):
    """Port: organisations that should be billed."""

    def list_active_ids(self) -> list[UUID]: ...


@dataclass(frozen=True)
class OrganisationRunResult:
    organisation_id: UUID
    outcome: str
    invoice_id: UUID | None = None
    invoice_number: str | None = None
    total: str | None = None
    error: dict[str, Any] | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome != FAILED


@dataclass
class BillingRunReport:
    """Per-organisation outcome of one billing run; failures are listed, never dropped."""

    month: int
    year: int
    results: list[OrganisationRunResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    def _count(self, *outcomes: str) -> int:
        return sum(1 for r in self.results if r.outcome in outcomes)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def generated(self) -> int:
        return self._count(InvoiceOutcome.GENERATED.value, InvoiceOutcome.REGENERATED.value)

    @property
    def unchanged(self) -> int:
        return self._count(InvoiceOutcome.UNCHANGED.value)

    @property
    def skipped(self) -> int:
        return self._count(InvoiceOutcome.SKIPPED.value)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def failures(self) -> list[OrganisationRunResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def failure_rate(self) -> float:
        return self.failed / self.total if self.total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "year": self.year,
            "total_organisations": self.total,
            "generated": self.generated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "failed": self.failed,
            "duration_seconds": round(self.duration_seconds, 3),
            "failures": [
                {"organisation_id": str(r.organisation_id), **(r.error or {})}
                for r in self.failures
            ],
        }


class BillingRunService:
    def __init__(
        self,
        invoicing_service: InvoicingService,
        organisation_repo: OrganisationRepository,
        max_concurrency: int = 8,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be positive")
        self._invoicing = invoicing_service
        self._organisation_repo = organisation_repo
        self._max_concurrency = max_concurrency

    def run_for_organisation(
        self, organisation_id: UUID, period: BillingPeriod
    ) -> OrganisationRunResult:
        """Generate one organisation's invoice, converting any failure into a result."""
        structlog.contextvars.bind_contextvars(
            organisation_id=str(organisation_id), month=period.month, year=period.year
        )
        start = time.perf_counter()
        try:
            result = self._invoicing.generate_invoice(organisation_id, period)
        except Exception as exc:
            error = error_to_dict(exc)
            logger.exception("Invoice generation failed for %s (%s)", organisation_id, error["code"])
            invoices_generated_total.labels(outcome=FAILED).inc()
            billing_run_failures_total.labels(code=error["code"]).inc()
            return OrganisationRunResult(organisation_id, FAILED, error=error)
        finally:
            invoice_generation_duration_seconds.observe(time.perf_counter() - start)
            structlog.contextvars.unbind_contextvars("organisation_id", "month", "year")

        invoices_generated_total.labels(outcome=result.outcome.value).inc()
        invoice = result.invoice
        return OrganisationRunResult(
            organisation_id,
            result.outcome.value,
            invoice_id=result.invoice_id,
            invoice_number=invoice.invoice_number if invoice else None,
            total=str(invoice.total) if invoice else None,
        )

    def run(
        self,
        period: BillingPeriod,
        organisation_ids: list[UUID] | None = None,
    ) -> BillingRunReport:
        """Invoice every organisation (or the given ones) for *period*.

        Results are reported in the order organisations were listed,
        regardless of completion order.
        """
        org_ids = (
            list(organisation_ids)
            if organisation_ids is not None
            else self._organisation_repo.list_active_ids()
        )
        report = BillingRunReport(month=period.month, year=period.year)
        if not org_ids:
            logger.info("No organisations to bill for %s", period)
            return report

        logger.info("Billing run for %s: %d organisations", period, len(org_ids))
        start = time.perf_counter()

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self._max_concurrency, len(org_ids))
        ) as executor:
            futures = [
                executor.submit(self.run_for_organisation, org_id, period) for org_id in org_ids
            ]
            report.results = [future.result() for future in futures]

        report.duration_seconds = time.perf_counter() - start
        logger.info(
            "Billing run for %s complete: %d generated, %d unchanged, %d skipped, %d failed",
            period,
            report.generated,
            report.unchanged,
            report.skipped,
            report.failed,
        )
        if report.failed and report.failure_rate > HIGH_FAILURE_RATE:
            logger.error(
                "High invoice generation failure rate for %s: %.1f%% (%d of %d)",
                period,
                report.failure_rate * 100,
                report.failed,
                report.total,
            )
        return report
