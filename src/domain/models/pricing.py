from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class _EffectiveWindow:
    """Naive effective dates are taken as UTC so they compare with the reference date."""

    effective_from: datetime
    effective_to: datetime | None

    def __post_init__(self) -> None:
        # Frozen dataclasses only allow this through object.__setattr__.
        object.__setattr__(self, "effective_from", _as_utc(self.effective_from))
        object.__setattr__(self, "effective_to", _as_utc(self.effective_to))


class BillingCycle(str, enum.Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class PricingRule(_EffectiveWindow):
    """Per-unit price for one metric, global or scoped to an organisation."""

    metric_name: str
    unit: str
    price_per_unit: Decimal
    effective_from: datetime
    currency: str = "INR"
    organisation_id: UUID | None = None
    effective_to: datetime | None = None
    is_active: bool = True
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    id: UUID = field(default_factory=uuid4)

    @property
    def is_global(self) -> bool:
        return self.organisation_id is None


@dataclass(frozen=True)
class MinimumChargeRule(_EffectiveWindow):
    minimum_amount: Decimal
    effective_from: datetime
    currency: str = "INR"
    organisation_id: UUID | None = None
    effective_to: datetime | None = None
    is_active: bool = True
    description: str | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_global(self) -> bool:
        return self.organisation_id is None


@dataclass(frozen=True)
class BillingConfig:
    organisation_id: UUID
    tax_rate: Decimal
    currency: str = "INR"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    payment_terms_days: int = 30
    minimum_charge_enabled: bool = False
    minimum_charge_amount: Decimal | None = None


@dataclass(frozen=True)
class UsageAggregate:
    """Quantity of one metric used by one project over a billing period."""

    organisation_id: UUID
    project_id: UUID
    metric_name: str
    unit: str
    quantity: Decimal
    month: int
    year: int
    id: UUID = field(default_factory=uuid4)
