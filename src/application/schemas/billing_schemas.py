"""
Pydantic v2 boundary schemas for billing configuration and invoice output.

Raw configuration records (rows, JSON documents, admin payloads) are checked
here exactly once and turned into frozen domain dataclasses. Money and
quantities travel as exact decimal strings; binary floats are rejected.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from domain.exceptions.billing_exceptions import InvalidConfigError
from domain.models.invoice import CalculatedInvoice
from domain.models.pricing import (
    BillingConfig,
    BillingCycle,
    MinimumChargeRule,
    PricingRule,
    UsageAggregate,
)
from domain.services.money import minor_unit_digits, to_fixed_string

# Storage precision for quantities, unit prices and tax rates.
QUANTITY_PLACES = 8
TAX_RATE_PLACES = 6


def _exact_decimal(value: Any) -> Any:
    if isinstance(value, float):
        raise ValueError("decimal values must be given as strings, not floats")
    return value


ExactDecimal = Annotated[Decimal, BeforeValidator(_exact_decimal)]


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Base / shared
# ---------------------------------------------------------------------------


class _ConfigRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)

    @field_validator("currency", check_fields=False)
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("currency must be a 3-letter code")
        return value.upper()


class _EffectiveDated(_ConfigRecord):
    id: UUID
    organisation_id: UUID | None = None
    currency: str = Field(default="INR", min_length=3, max_length=3)
    effective_from: datetime
    effective_to: datetime | None = None
    is_active: bool = True

    @field_validator("effective_from", "effective_to")
    @classmethod
    def _tz_aware(cls, value: datetime | None) -> datetime | None:
        return _aware(value) if value is not None else None

    @model_validator(mode="after")
    def _check_range(self) -> _EffectiveDated:
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to precedes effective_from")
        return self


# ---------------------------------------------------------------------------
# Configuration records
# ---------------------------------------------------------------------------


class PricingRuleSchema(_EffectiveDated):
    metric_name: str = Field(min_length=1, max_length=100)
    unit: str = Field(min_length=1, max_length=50)
    price_per_unit: ExactDecimal = Field(ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> PricingRule:
        return PricingRule(
            id=self.id,
            organisation_id=self.organisation_id,
            metric_name=self.metric_name,
            unit=self.unit,
            price_per_unit=self.price_per_unit,
            currency=self.currency,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            is_active=self.is_active,
            metadata=dict(self.metadata),
        )


class MinimumChargeRuleSchema(_EffectiveDated):
    minimum_amount: ExactDecimal = Field(ge=0)
    description: str | None = None

    def to_domain(self) -> MinimumChargeRule:
        return MinimumChargeRule(
            id=self.id,
            organisation_id=self.organisation_id,
            minimum_amount=self.minimum_amount,
            currency=self.currency,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            is_active=self.is_active,
            description=self.description,
        )


class BillingConfigSchema(_ConfigRecord):
    organisation_id: UUID
    tax_rate: ExactDecimal = Field(ge=0, le=1)
    currency: str = Field(default="INR", min_length=3, max_length=3)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    payment_terms_days: int = Field(default=30, gt=0)
    minimum_charge_enabled: bool = False
    minimum_charge_amount: ExactDecimal | None = Field(default=None, ge=0)

    def to_domain(self) -> BillingConfig:
        return BillingConfig(
            organisation_id=self.organisation_id,
            tax_rate=self.tax_rate,
            currency=self.currency,
            billing_cycle=self.billing_cycle,
            payment_terms_days=self.payment_terms_days,
            minimum_charge_enabled=self.minimum_charge_enabled,
            minimum_charge_amount=self.minimum_charge_amount,
        )


class UsageAggregateSchema(_ConfigRecord):
    """Usage is validated for shape only; a negative quantity is reported by the engine."""

    id: UUID
    organisation_id: UUID
    project_id: UUID
    metric_name: str = Field(min_length=1, max_length=100)
    unit: str = Field(min_length=1, max_length=50)
    quantity: ExactDecimal
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2020)

    def to_domain(self) -> UsageAggregate:
        return UsageAggregate(
            id=self.id,
            organisation_id=self.organisation_id,
            project_id=self.project_id,
            metric_name=self.metric_name,
            unit=self.unit,
            quantity=self.quantity,
            month=self.month,
            year=self.year,
        )


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def _field_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


def load_billing_config(
    raw: dict[str, Any] | None, organisation_id: UUID | None = None
) -> BillingConfig:
    """Validate a raw billing-config record.

    Raises :class:`InvalidConfigError` carrying one entry per bad field, e.g.
    a missing ``tax_rate``.
    """
    if raw is None:
        raise InvalidConfigError(organisation_id, "no billing configuration found")
    try:
        return BillingConfigSchema.model_validate(raw).to_domain()
    except ValidationError as exc:
        errors = _field_errors(exc)
        fields = ", ".join(e["field"] for e in errors)
        raise InvalidConfigError(organisation_id, f"invalid fields: {fields}", errors) from exc


def load_pricing_rules(
    raw_rules: list[dict[str, Any]], organisation_id: UUID | None = None
) -> tuple[PricingRule, ...]:
    try:
        return tuple(PricingRuleSchema.model_validate(r).to_domain() for r in raw_rules)
    except ValidationError as exc:
        raise InvalidConfigError(organisation_id, "invalid pricing rule", _field_errors(exc)) from exc


def load_minimum_charge_rules(
    raw_rules: list[dict[str, Any]], organisation_id: UUID | None = None
) -> tuple[MinimumChargeRule, ...]:
    try:
        return tuple(MinimumChargeRuleSchema.model_validate(r).to_domain() for r in raw_rules)
    except ValidationError as exc:
        raise InvalidConfigError(
            organisation_id, "invalid minimum charge rule", _field_errors(exc)
        ) from exc


def load_usage_aggregates(
    raw_rows: list[dict[str, Any]], organisation_id: UUID | None = None
) -> tuple[UsageAggregate, ...]:
    try:
        return tuple(UsageAggregateSchema.model_validate(r).to_domain() for r in raw_rows)
    except ValidationError as exc:
        raise InvalidConfigError(
            organisation_id, "invalid usage aggregate", _field_errors(exc)
        ) from exc


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def invoice_to_payload(invoice: CalculatedInvoice) -> dict[str, Any]:
    """Serialise an invoice with every amount as a fixed-point decimal string."""
    places = minor_unit_digits(invoice.currency)

    def money(value: Decimal) -> str:
        return to_fixed_string(value, places)

    return {
        "organisation_id": str(invoice.organisation_id),
        "invoice_number": invoice.invoice_number,
        "month": invoice.month,
        "year": invoice.year,
        "period_start": invoice.period_start.isoformat(),
        "period_end": invoice.period_end.isoformat(),
        "due_date": invoice.due_date.isoformat(),
        "currency": invoice.currency,
        "line_items": [
            {
                "line_number": number,
                "project_id": str(item.project_id) if item.project_id else None,
                "metric_name": item.metric_name,
                "description": item.description,
                "quantity": to_fixed_string(item.quantity, QUANTITY_PLACES),
                "unit": item.unit,
                "unit_price": to_fixed_string(item.unit_price, QUANTITY_PLACES),
                "total": money(item.total),
                "currency": item.currency,
                "pricing_rule_id": str(item.pricing_rule_id) if item.pricing_rule_id else None,
                "usage_aggregate_id": (
                    str(item.usage_aggregate_id) if item.usage_aggregate_id else None
                ),
            }
            for number, item in enumerate(invoice.line_items, start=1)
        ],
        "subtotal": money(invoice.subtotal),
        "minimum_charge": money(invoice.minimum_charge),
        "subtotal_after_minimum": money(invoice.subtotal_after_minimum),
        "tax_rate": to_fixed_string(invoice.tax_rate, TAX_RATE_PLACES),
        "tax_amount": money(invoice.tax_amount),
        "discount_amount": money(invoice.discount_amount),
        "total": money(invoice.total),
        "pricing_rule_ids": [str(rule_id) for rule_id in invoice.pricing_rule_ids],
    }
