"""Invoicing application service.

Loads one organisation's configuration and usage snapshot, delegates the
calculation to the pure :class:`InvoiceCalculationEngine`, and persists the
result idempotently: one live (not cancelled) invoice per (organisation,
month, year).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

from application.schemas.billing_schemas import invoice_to_payload, load_billing_config
from domain.exceptions.billing_exceptions import (
    InvoiceAlreadyFinalizedError,
    InvoiceNotFoundError,
)
from domain.models.invoice import CalculatedInvoice, InvoiceStatus, StoredInvoice
from domain.services.billing_engine import BillingSnapshot
from domain.services.money import ZERO

if TYPE_CHECKING:
    from domain.models.period import BillingPeriod
    from domain.models.pricing import MinimumChargeRule, PricingRule, UsageAggregate
    from domain.services.billing_engine import InvoiceCalculationEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Repository / infrastructure port interfaces
# ---------------------------------------------------------------------------


class PricingRuleRepository(Protocol):
    """Port: pricing rules visible to an organisation (its own plus global)."""

    def list_for_organisation(self, organisation_id: UUID) -> list[PricingRule]: ...


class MinimumChargeRuleRepository(Protocol):
    def list_for_organisation(self, organisation_id: UUID) -> list[MinimumChargeRule]: ...


class BillingConfigRepository(Protocol):
    """Port: raw billing configuration records, validated by the service."""

    def get(self, organisation_id: UUID) -> dict[str, Any] | None: ...


class UsageAggregateRepository(Protocol):
    def list_for_period(
        self,
        organisation_id: UUID,
        month: int,
        year: int,
    ) -> list[UsageAggregate]: ...


class InvoiceRepository(Protocol):
    """Port: persistence for invoices.

    ``get_by_organisation_and_period`` returns only a live invoice: cancelled
    ones are ignored. ``save`` raises :class:`DuplicateInvoiceError` when a
    live invoice for the same (organisation, month, year) already exists.
    """

    def get_by_organisation_and_period(
        self,
        organisation_id: UUID,
        month: int,
        year: int,
    ) -> StoredInvoice | None: ...

    def get(self, invoice_id: UUID) -> StoredInvoice | None: ...

    def save(self, stored: StoredInvoice) -> StoredInvoice: ...

    def replace(self, stored: StoredInvoice) -> StoredInvoice: ...


# ---------------------------------------------------------------------------
# Value objects returned by service methods
# ---------------------------------------------------------------------------


class InvoiceOutcome(str, Enum):
    GENERATED = "generated"
    REGENERATED = "regenerated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class InvoiceResult:
    organisation_id: UUID
    outcome: InvoiceOutcome
    invoice: CalculatedInvoice | None = None
    invoice_id: UUID | None = None
    reason: str = ""


def _is_empty(invoice: CalculatedInvoice) -> bool:
    return not invoice.line_items and invoice.total == ZERO


def same_invoice(stored: CalculatedInvoice, recalculated: CalculatedInvoice) -> bool:
    """Compare at storage precision, the way both copies would be persisted."""
    return invoice_to_payload(stored) == invoice_to_payload(recalculated)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class InvoicingService:
    """Generates, persists and finalizes invoices for one organisation at a time."""

    def __init__(
        self,
        pricing_rule_repo: PricingRuleRepository,
        minimum_charge_repo: MinimumChargeRuleRepository,
        billing_config_repo: BillingConfigRepository,
        usage_repo: UsageAggregateRepository,
        invoice_repo: InvoiceRepository,
        engine: InvoiceCalculationEngine,
        skip_empty_invoices: bool = True,
    ) -> None:
        self._pricing_rule_repo = pricing_rule_repo
        self._minimum_charge_repo = minimum_charge_repo
        self._billing_config_repo = billing_config_repo
        self._usage_repo = usage_repo
        self._invoice_repo = invoice_repo
        self._engine = engine
        self._skip_empty = skip_empty_invoices

    # -- helpers ----------------------------------------------------------

    def load_snapshot(self, organisation_id: UUID, period: BillingPeriod) -> BillingSnapshot:
        """Read everything the engine needs; configuration is validated here, once."""
        raw_config = self._billing_config_repo.get(organisation_id)
        config = load_billing_config(raw_config, organisation_id)
        return BillingSnapshot(
            organisation_id=organisation_id,
            period=period,
            billing_config=config,
            pricing_rules=tuple(self._pricing_rule_repo.list_for_organisation(organisation_id)),
            minimum_charge_rules=tuple(
                self._minimum_charge_repo.list_for_organisation(organisation_id)
            ),
            usage_aggregates=tuple(
                self._usage_repo.list_for_period(organisation_id, period.month, period.year)
            ),
        )

    # -- public API -------------------------------------------------------

    def preview_invoice(self, organisation_id: UUID, period: BillingPeriod) -> CalculatedInvoice:
        """Calculate without persisting."""
        return self._engine.calculate(self.load_snapshot(organisation_id, period))

    def generate_invoice(self, organisation_id: UUID, period: BillingPeriod) -> InvoiceResult:
        """Calculate and persist the invoice for one organisation and period.

        Safe to retry: an identical recalculation leaves the stored invoice
        alone, a changed one overwrites a draft, and a changed one against a
        finalized invoice raises :class:`InvoiceAlreadyFinalizedError`.
        """
        invoice = self.preview_invoice(organisation_id, period)
        existing = self._invoice_repo.get_by_organisation_and_period(
            organisation_id, period.month, period.year
        )

        if existing is None:
            if self._skip_empty and _is_empty(invoice):
                logger.info("No billable usage for %s in %s; skipping", organisation_id, period)
                return InvoiceResult(
                    organisation_id, InvoiceOutcome.SKIPPED, invoice, reason="no billable usage"
                )
            stored = self._invoice_repo.save(StoredInvoice(invoice=invoice))
            logger.info(
                "Invoice %s generated for organisation %s (%s, total %s %s)",
                invoice.invoice_number,
                organisation_id,
                period,
                invoice.total,
                invoice.currency,
            )
            return InvoiceResult(organisation_id, InvoiceOutcome.GENERATED, invoice, stored.id)

        if same_invoice(existing.invoice, invoice):
            logger.info("Invoice %s unchanged on recalculation", invoice.invoice_number)
            return InvoiceResult(organisation_id, InvoiceOutcome.UNCHANGED, invoice, existing.id)

        if existing.status is not InvoiceStatus.DRAFT:
            raise InvoiceAlreadyFinalizedError(
                organisation_id, existing.id, period.month, period.year
            )

        existing.invoice = invoice
        existing.updated_at = datetime.now(UTC)
        self._invoice_repo.replace(existing)
        logger.info("Draft invoice %s regenerated for %s", invoice.invoice_number, organisation_id)
        return InvoiceResult(organisation_id, InvoiceOutcome.REGENERATED, invoice, existing.id)

    def finalize_invoice(self, invoice_id: UUID) -> StoredInvoice:
        """Mark a draft invoice immutable; later recalculations may not change it."""
        stored = self._invoice_repo.get(invoice_id)
        if stored is None or stored.status is not InvoiceStatus.DRAFT:
            raise InvoiceNotFoundError(invoice_id)
        now = datetime.now(UTC)
        stored.status = InvoiceStatus.FINALIZED
        stored.finalized_at = now
        stored.updated_at = now
        logger.info("Invoice %s finalized", stored.invoice.invoice_number)
        return self._invoice_repo.replace(stored)

    def cancel_invoice(self, invoice_id: UUID) -> StoredInvoice:
        """Void an invoice; the next generation for its period starts afresh."""
        stored = self._invoice_repo.get(invoice_id)
        if stored is None:
            raise InvoiceNotFoundError(invoice_id)
        if stored.status is InvoiceStatus.CANCELLED:
            return stored
        stored.status = InvoiceStatus.CANCELLED
        stored.updated_at = datetime.now(UTC)
        logger.info("Invoice %s cancelled", stored.invoice.invoice_number)
        return self._invoice_repo.replace(stored)
