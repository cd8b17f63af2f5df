"""
Invoice calculation engine.

A pure function of one organisation's configuration and usage snapshot for
one billing period. It performs no I/O and keeps no state between calls, so
recalculating the same snapshot always yields an equal
:class:`~domain.models.invoice.CalculatedInvoice`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from domain.exceptions.billing_exceptions import SnapshotMismatchError
from domain.models.invoice import CalculatedInvoice, CalculatedLineItem
from domain.models.period import BillingPeriod
from domain.models.pricing import BillingConfig, MinimumChargeRule, PricingRule, UsageAggregate
from domain.services.charges import ChargeCalculator
from domain.services.invoice_assembler import InvoiceAssembler
from domain.services.line_item_calculator import LineItemCalculator
from domain.services.rule_resolver import MinimumChargeResolver, PricingRuleResolver


@dataclass(frozen=True)
class BillingSnapshot:
    """Everything the engine reads for one (organisation, period) invocation."""

    organisation_id: UUID
    period: BillingPeriod
    billing_config: BillingConfig
    pricing_rules: tuple[PricingRule, ...] = ()
    minimum_charge_rules: tuple[MinimumChargeRule, ...] = ()
    usage_aggregates: tuple[UsageAggregate, ...] = ()
    reference_date: datetime | None = field(default=None)

    @property
    def effective_reference_date(self) -> datetime:
        return self.reference_date or self.period.reference_date


def _aggregate_sort_key(aggregate: UsageAggregate) -> tuple[str, str, str, str]:
    return (str(aggregate.project_id), aggregate.metric_name, aggregate.unit, str(aggregate.id))


class InvoiceCalculationEngine:
    def __init__(
        self,
        line_item_calculator: LineItemCalculator | None = None,
        charge_calculator: ChargeCalculator | None = None,
        assembler: InvoiceAssembler | None = None,
    ) -> None:
        self._line_items = line_item_calculator or LineItemCalculator()
        self._charges = charge_calculator or ChargeCalculator()
        self._assembler = assembler or InvoiceAssembler()

    def calculate(self, snapshot: BillingSnapshot) -> CalculatedInvoice:
        self._check_ownership(snapshot)

        org_id = snapshot.organisation_id
        reference_date = snapshot.effective_reference_date
        config = snapshot.billing_config

        pricing = PricingRuleResolver(snapshot.pricing_rules)
        line_items: list[CalculatedLineItem] = []
        for aggregate in sorted(snapshot.usage_aggregates, key=_aggregate_sort_key):
            rule = pricing.resolve(org_id, aggregate.metric_name, reference_date, aggregate.unit)
            line_items.append(self._line_items.compute(aggregate, rule, config.currency))

        minimum_rule = None
        if config.minimum_charge_enabled:
            minimum_rule = MinimumChargeResolver(snapshot.minimum_charge_rules).resolve(
                org_id, reference_date
            )

        charges = self._charges.apply(line_items, minimum_rule, config)
        return self._assembler.assemble(org_id, snapshot.period, line_items, charges, config)

    @staticmethod
    def _check_ownership(snapshot: BillingSnapshot) -> None:
        org_id = snapshot.organisation_id
        if snapshot.billing_config.organisation_id != org_id:
            raise SnapshotMismatchError(org_id, "billing config belongs to another organisation")
        for aggregate in snapshot.usage_aggregates:
            if aggregate.organisation_id != org_id:
                raise SnapshotMismatchError(org_id, f"usage aggregate {aggregate.id}")
            if (aggregate.month, aggregate.year) != (snapshot.period.month, snapshot.period.year):
                raise SnapshotMismatchError(
                    org_id, f"usage aggregate {aggregate.id} is for {aggregate.year}-{aggregate.month:02d}"
                )
