"""
Minimum-charge enforcement and tax.

``minimum_charge`` is the top-up needed to lift the subtotal to the minimum,
never a negative adjustment. Tax is charged on the subtotal after the
minimum and rounded once, half-up, to the invoice currency's minor unit.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from domain.exceptions.billing_exceptions import CurrencyMismatchError
from domain.models.invoice import CalculatedLineItem, ChargeSummary
from domain.models.pricing import BillingConfig, MinimumChargeRule
from domain.services.money import ZERO, decimal_sum, multiply, normalise_currency, round_minor

if TYPE_CHECKING:
    from collections.abc import Sequence


def minimum_top_up(subtotal: Decimal, minimum_amount: Decimal) -> Decimal:
    """``max(0, minimum_amount - subtotal)``."""
    if subtotal >= minimum_amount:
        return ZERO
    return minimum_amount - subtotal


class ChargeCalculator:

    def apply(
        self,
        line_items: Sequence[CalculatedLineItem],
        minimum_rule: MinimumChargeRule | None,
        billing_config: BillingConfig,
    ) -> ChargeSummary:
        currency = normalise_currency(billing_config.currency)

        for item in line_items:
            if item.currency != currency:
                raise CurrencyMismatchError(
                    currency,
                    item.currency,
                    organisation_id=billing_config.organisation_id,
                    source=f"line item {item.metric_name}",
                )

        subtotal = decimal_sum(item.total for item in line_items)

        minimum_charge = ZERO
        minimum_rule_id = None
        if billing_config.minimum_charge_enabled:
            if minimum_rule is not None:
                rule_currency = normalise_currency(minimum_rule.currency)
                if rule_currency != currency:
                    raise CurrencyMismatchError(
                        currency,
                        rule_currency,
                        organisation_id=billing_config.organisation_id,
                        source=f"minimum charge rule {minimum_rule.id}",
                    )
                minimum_charge = minimum_top_up(subtotal, minimum_rule.minimum_amount)
                minimum_rule_id = minimum_rule.id
            elif billing_config.minimum_charge_amount is not None:
                minimum_charge = minimum_top_up(subtotal, billing_config.minimum_charge_amount)
        minimum_charge = round_minor(minimum_charge, currency)

        subtotal_after_minimum = subtotal + minimum_charge
        tax_amount = round_minor(
            multiply(subtotal_after_minimum, billing_config.tax_rate), currency
        )

        return ChargeSummary(
            subtotal=subtotal,
            minimum_charge=minimum_charge,
            subtotal_after_minimum=subtotal_after_minimum,
            tax_rate=billing_config.tax_rate,
            tax_amount=tax_amount,
            minimum_charge_rule_id=minimum_rule_id,
        )
