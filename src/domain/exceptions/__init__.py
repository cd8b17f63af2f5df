from domain.exceptions.billing_exceptions import (
    BillingError,
    CurrencyMismatchError,
    DomainError,
    DuplicateInvoiceError,
    InvalidConfigError,
    InvalidPeriodError,
    InvoiceAlreadyFinalizedError,
    InvoiceConsistencyError,
    InvoiceNotFoundError,
    NegativeQuantityError,
    RuleNotFoundError,
    SnapshotMismatchError,
    error_to_dict,
)

__all__ = [
    "BillingError",
    "CurrencyMismatchError",
    "DomainError",
    "DuplicateInvoiceError",
    "InvalidConfigError",
    "InvalidPeriodError",
    "InvoiceAlreadyFinalizedError",
    "InvoiceConsistencyError",
    "InvoiceNotFoundError",
    "NegativeQuantityError",
    "RuleNotFoundError",
    "SnapshotMismatchError",
    "error_to_dict",
]
