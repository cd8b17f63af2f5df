from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING
from uuid import UUID

from domain.exceptions.billing_exceptions import InvoiceConsistencyError
from domain.models.invoice import CalculatedInvoice, CalculatedLineItem, ChargeSummary
from domain.models.period import BillingPeriod
from domain.models.pricing import BillingConfig
from domain.services.money import ZERO, decimal_sum, normalise_currency, round_minor

if TYPE_CHECKING:
    from collections.abc import Sequence


def invoice_number(organisation_id: UUID, period: BillingPeriod) -> str:
    """``INV-YYYYMM-XXXXXXXX`` where the suffix is the organisation id prefix."""
    return f"INV-{period.year}{period.month:02d}-{organisation_id.hex[:8].upper()}"


class InvoiceAssembler:
    """Combines line items and charges into a finished, self-consistent invoice."""

    def assemble(
        self,
        organisation_id: UUID,
        period: BillingPeriod,
        line_items: Sequence[CalculatedLineItem],
        charges: ChargeSummary,
        billing_config: BillingConfig,
    ) -> CalculatedInvoice:
        currency = normalise_currency(billing_config.currency)
        # Reserved; no discount source exists yet.
        discount_amount = round_minor(ZERO, currency)
        total = charges.subtotal_after_minimum + charges.tax_amount - discount_amount

        rule_ids: list[UUID] = []
        for item in line_items:
            if item.pricing_rule_id is not None and item.pricing_rule_id not in rule_ids:
                rule_ids.append(item.pricing_rule_id)

        invoice = CalculatedInvoice(
            organisation_id=organisation_id,
            invoice_number=invoice_number(organisation_id, period),
            month=period.month,
            year=period.year,
            period_start=period.period_start,
            period_end=period.period_end,
            due_date=period.period_end + timedelta(days=billing_config.payment_terms_days),
            currency=currency,
            line_items=tuple(line_items),
            subtotal=charges.subtotal,
            minimum_charge=charges.minimum_charge,
            subtotal_after_minimum=charges.subtotal_after_minimum,
            tax_rate=charges.tax_rate,
            tax_amount=charges.tax_amount,
            discount_amount=discount_amount,
            total=total,
            pricing_rule_ids=tuple(rule_ids),
            minimum_charge_rule_id=charges.minimum_charge_rule_id,
        )
        verify_invoice(invoice)
        return invoice


def verify_invoice(invoice: CalculatedInvoice) -> None:
    """Raise :class:`InvoiceConsistencyError` unless every total derives from the line items.

    Amounts are compared exactly: all of them come from the same rounded
    line totals, so any difference is a defect rather than rounding noise.
    """

    def fail(reason: str) -> None:
        raise InvoiceConsistencyError(invoice.organisation_id, reason)

    line_sum = decimal_sum(item.total for item in invoice.line_items)
    if line_sum != invoice.subtotal:
        fail(f"line items sum to {line_sum}, subtotal is {invoice.subtotal}")

    if invoice.subtotal + invoice.minimum_charge != invoice.subtotal_after_minimum:
        fail("subtotal after minimum is not subtotal + minimum charge")

    expected_total = invoice.subtotal_after_minimum + invoice.tax_amount - invoice.discount_amount
    if expected_total != invoice.total:
        fail(f"total {invoice.total} differs from expected {expected_total}")

    for name in ("subtotal", "minimum_charge", "tax_amount", "discount_amount", "total"):
        if getattr(invoice, name) < ZERO:
            fail(f"{name} is negative")

    for item in invoice.line_items:
        if item.quantity < ZERO or item.unit_price < ZERO or item.total < ZERO:
            fail(f"line item {item.metric_name} has a negative amount")
        if item.currency != invoice.currency:
            fail(f"line item {item.metric_name} is in {item.currency}")
