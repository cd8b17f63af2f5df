from __future__ import annotations

from domain.exceptions.billing_exceptions import CurrencyMismatchError, NegativeQuantityError
from domain.models.invoice import CalculatedLineItem
from domain.models.pricing import PricingRule, UsageAggregate
from domain.services.money import ZERO, multiply, normalise_currency, round_minor


class LineItemCalculator:
    """Prices one usage aggregate with its resolved rule."""

    def compute(
        self,
        aggregate: UsageAggregate,
        rule: PricingRule,
        invoice_currency: str | None = None,
    ) -> CalculatedLineItem:
        if aggregate.quantity < ZERO:
            raise NegativeQuantityError(
                aggregate.organisation_id,
                aggregate.metric_name,
                aggregate.quantity,
                aggregate.id,
            )

        currency = normalise_currency(rule.currency)
        if invoice_currency is not None and currency != normalise_currency(invoice_currency):
            raise CurrencyMismatchError(
                normalise_currency(invoice_currency),
                currency,
                organisation_id=aggregate.organisation_id,
                source=f"pricing rule {rule.id} for {rule.metric_name}",
            )

        # Rounded here and only here; sums downstream use the rounded totals.
        unrounded = multiply(aggregate.quantity, rule.price_per_unit)

        return CalculatedLineItem(
            project_id=aggregate.project_id,
            metric_name=aggregate.metric_name,
            description=f"{aggregate.metric_name} ({aggregate.unit})",
            quantity=aggregate.quantity,
            unit=aggregate.unit,
            unit_price=rule.price_per_unit,
            total=round_minor(unrounded, currency),
            unrounded_total=unrounded,
            currency=currency,
            pricing_rule_id=rule.id,
            usage_aggregate_id=aggregate.id,
        )
