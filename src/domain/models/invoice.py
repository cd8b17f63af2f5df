from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CalculatedLineItem:
    project_id: UUID | None
    metric_name: str
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total: Decimal
    unrounded_total: Decimal
    currency: str
    pricing_rule_id: UUID | None = None
    usage_aggregate_id: UUID | None = None


@dataclass(frozen=True)
class ChargeSummary:
    """Subtotal, minimum-charge top-up and tax for one invoice."""

    subtotal: Decimal
    minimum_charge: Decimal
    subtotal_after_minimum: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    minimum_charge_rule_id: UUID | None = None


@dataclass(frozen=True)
class CalculatedInvoice:
    organisation_id: UUID
    invoice_number: str
    month: int
    year: int
    period_start: date
    period_end: date
    due_date: date
    currency: str
    line_items: tuple[CalculatedLineItem, ...]
    subtotal: Decimal
    minimum_charge: Decimal
    subtotal_after_minimum: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    pricing_rule_ids: tuple[UUID, ...] = ()
    minimum_charge_rule_id: UUID | None = None


@dataclass
class StoredInvoice:
    """A calculated invoice as held by the persistence layer."""

    invoice: CalculatedInvoice
    id: UUID = field(default_factory=uuid4)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finalized_at: datetime | None = None

    @property
    def organisation_id(self) -> UUID:
        return self.invoice.organisation_id

    @property
    def month(self) -> int:
        return self.invoice.month

    @property
    def year(self) -> int:
        return self.invoice.year
