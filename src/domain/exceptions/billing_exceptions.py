from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

PROBLEM_BASE = "https://api.billing-engine.example/problems"


class DomainError(Exception):
    """Base class for all domain-layer exceptions.

    Carries HTTP-mapping metadata so an outer layer can produce
    RFC 9457 Problem Details without knowing exception internals, plus a
    stable ``code`` used in billing-run reports.
    """

    code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        detail: str = "",
        *,
        title: str = "Domain Error",
        status_code: int = 400,
        error_type: str = "about:blank",
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.title = title
        self.status_code = status_code
        self.error_type = error_type


class BillingError(DomainError):
    """Failure scoped to one organisation's invoice calculation."""

    code = "BILLING_ERROR"

    def __init__(
        self,
        detail: str = "",
        *,
        organisation_id: UUID | None = None,
        title: str = "Billing Error",
        status_code: int = 422,
        error_type: str = "about:blank",
    ) -> None:
        self.organisation_id = organisation_id
        super().__init__(
            detail=detail,
            title=title,
            status_code=status_code,
            error_type=error_type,
        )


class RuleNotFoundError(BillingError):
    code = "RULE_NOT_FOUND"

    def __init__(
        self,
        organisation_id: UUID | None = None,
        metric_name: str = "",
        reference_date: datetime | None = None,
        unit: str | None = None,
    ) -> None:
        self.metric_name = metric_name
        self.reference_date = reference_date
        self.unit = unit
        at = reference_date.isoformat() if reference_date else "?"
        metric = f"{metric_name} ({unit})" if unit else metric_name
        super().__init__(
            detail=f"No pricing rule for metric {metric} at {at}",
            organisation_id=organisation_id,
            title="Pricing Rule Not Found",
            status_code=404,
            error_type=f"{PROBLEM_BASE}/rule-not-found",
        )


class NegativeQuantityError(BillingError):
    code = "NEGATIVE_QUANTITY"

    def __init__(
        self,
        organisation_id: UUID | None = None,
        metric_name: str = "",
        quantity: Any = None,
        usage_aggregate_id: UUID | None = None,
    ) -> None:
        self.metric_name = metric_name
        self.quantity = quantity
        self.usage_aggregate_id = usage_aggregate_id
        super().__init__(
            detail=f"Usage quantity for {metric_name} is negative: {quantity}",
            organisation_id=organisation_id,
            title="Negative Usage Quantity",
            error_type=f"{PROBLEM_BASE}/negative-quantity",
        )


class CurrencyMismatchError(BillingError):
    code = "CURRENCY_MISMATCH"

    def __init__(
        self,
        expected: str = "",
        actual: str = "",
        *,
        organisation_id: UUID | None = None,
        source: str = "",
    ) -> None:
        self.expected = expected
        self.actual = actual
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(
            detail=f"Currency {actual} does not match invoice currency {expected}{where}",
            organisation_id=organisation_id,
            title="Currency Mismatch",
            error_type=f"{PROBLEM_BASE}/currency-mismatch",
        )


class InvalidConfigError(BillingError):
    code = "INVALID_CONFIG"

    def __init__(
        self,
        organisation_id: UUID | None = None,
        reason: str = "",
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.reason = reason
        self.errors = errors or []
        super().__init__(
            detail=f"Invalid billing configuration: {reason}",
            organisation_id=organisation_id,
            title="Invalid Billing Configuration",
            error_type=f"{PROBLEM_BASE}/invalid-config",
        )


class InvalidPeriodError(BillingError):
    code = "INVALID_PERIOD"

    def __init__(self, month: int = 0, year: int = 0, reason: str = "") -> None:
        self.month = month
        self.year = year
        super().__init__(
            detail=f"Invalid billing period {year}-{month:02d}: {reason}",
            title="Invalid Billing Period",
            error_type=f"{PROBLEM_BASE}/invalid-period",
        )


class SnapshotMismatchError(BillingError):
    code = "SNAPSHOT_MISMATCH"

    def __init__(self, organisation_id: UUID | None = None, reason: str = "") -> None:
        self.reason = reason
        super().__init__(
            detail=f"Billing snapshot does not belong to organisation {organisation_id}: {reason}",
            organisation_id=organisation_id,
            title="Snapshot Mismatch",
            error_type=f"{PROBLEM_BASE}/snapshot-mismatch",
        )


class InvoiceConsistencyError(BillingError):
    code = "INVOICE_INCONSISTENT"

    def __init__(self, organisation_id: UUID | None = None, reason: str = "") -> None:
        self.reason = reason
        super().__init__(
            detail=f"Invoice failed consistency check: {reason}",
            organisation_id=organisation_id,
            title="Inconsistent Invoice",
            status_code=500,
            error_type=f"{PROBLEM_BASE}/invoice-inconsistent",
        )


class InvoiceAlreadyFinalizedError(BillingError):
    code = "INVOICE_FINALIZED"

    def __init__(
        self,
        organisation_id: UUID | None = None,
        invoice_id: UUID | None = None,
        month: int = 0,
        year: int = 0,
    ) -> None:
        self.invoice_id = invoice_id
        self.month = month
        self.year = year
        super().__init__(
            detail=(
                f"Invoice {invoice_id} for {year}-{month:02d} is finalized and "
                "differs from the recalculated amounts"
            ),
            organisation_id=organisation_id,
            title="Invoice Already Finalized",
            status_code=409,
            error_type=f"{PROBLEM_BASE}/invoice-finalized",
        )


class DuplicateInvoiceError(BillingError):
    code = "INVOICE_EXISTS"

    def __init__(self, organisation_id: UUID | None = None, month: int = 0, year: int = 0) -> None:
        self.month = month
        self.year = year
        super().__init__(
            detail=f"An invoice for {year}-{month:02d} already exists for organisation {organisation_id}",
            organisation_id=organisation_id,
            title="Duplicate Invoice",
            status_code=409,
            error_type=f"{PROBLEM_BASE}/duplicate-invoice",
        )


class InvoiceNotFoundError(BillingError):
    code = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: UUID | None = None) -> None:
        self.invoice_id = invoice_id
        super().__init__(
            detail=f"Invoice not found or not in draft status: {invoice_id}",
            title="Invoice Not Found",
            status_code=404,
            error_type=f"{PROBLEM_BASE}/invoice-not-found",
        )


def error_to_dict(exc: BaseException) -> dict[str, Any]:
    """Flatten an exception into the shape used by billing-run reports."""
    if isinstance(exc, DomainError):
        return {"code": exc.code, "detail": exc.detail, "status_code": exc.status_code}
    return {"code": "INTERNAL_ERROR", "detail": str(exc), "status_code": 500}
