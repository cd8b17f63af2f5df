from domain.models.invoice import (
    CalculatedInvoice,
    CalculatedLineItem,
    ChargeSummary,
    InvoiceStatus,
    StoredInvoice,
)
from domain.models.period import BillingPeriod
from domain.models.pricing import (
    BillingConfig,
    BillingCycle,
    MinimumChargeRule,
    PricingRule,
    UsageAggregate,
)

__all__ = [
    "BillingConfig",
    "BillingCycle",
    "BillingPeriod",
    "CalculatedInvoice",
    "CalculatedLineItem",
    "ChargeSummary",
    "InvoiceStatus",
    "MinimumChargeRule",
    "PricingRule",
    "StoredInvoice",
    "UsageAggregate",
]
