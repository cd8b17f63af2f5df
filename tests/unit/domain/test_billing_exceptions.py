"""Tests for src/domain/exceptions/billing_exceptions.py"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from domain.exceptions.billing_exceptions import (
    BillingError,
    CurrencyMismatchError,
    DomainError,
    DuplicateInvoiceError,
    InvalidConfigError,
    InvoiceAlreadyFinalizedError,
    InvoiceConsistencyError,
    NegativeQuantityError,
    RuleNotFoundError,
    error_to_dict,
)


class TestDomainError:
    def test_default_attributes(self):
        exc = DomainError("something went wrong")
        assert exc.detail == "something went wrong"
        assert exc.title == "Domain Error"
        assert exc.status_code == 400
        assert exc.error_type == "about:blank"

    def test_billing_error_is_domain_error(self):
        assert issubclass(BillingError, DomainError)


class TestRuleNotFoundError:
    def test_attributes(self):
        org = uuid4()
        ref = datetime(2025, 7, 31, tzinfo=timezone.utc)
        exc = RuleNotFoundError(org, "api_calls", ref, "call")
        assert exc.organisation_id == org
        assert exc.metric_name == "api_calls"
        assert exc.code == "RULE_NOT_FOUND"
        assert exc.status_code == 404
        assert "api_calls (call)" in exc.detail


class TestOtherErrors:
    def test_negative_quantity(self):
        exc = NegativeQuantityError(uuid4(), "storage_gb", Decimal("-5"))
        assert exc.code == "NEGATIVE_QUANTITY"
        assert "-5" in exc.detail

    def test_currency_mismatch_names_both_currencies(self):
        exc = CurrencyMismatchError("INR", "USD", source="pricing rule x")
        assert exc.expected == "INR"
        assert exc.actual == "USD"
        assert "USD" in exc.detail and "INR" in exc.detail

    def test_invalid_config_carries_field_errors(self):
        errors = [{"field": "tax_rate", "message": "Field required"}]
        exc = InvalidConfigError(uuid4(), "invalid fields: tax_rate", errors)
        assert exc.errors == errors
        assert exc.code == "INVALID_CONFIG"

    def test_consistency_error_is_server_side(self):
        assert InvoiceConsistencyError(uuid4(), "bad").status_code == 500

    @pytest.mark.parametrize("cls", [InvoiceAlreadyFinalizedError, DuplicateInvoiceError])
    def test_conflicts_map_to_409(self, cls):
        assert cls(uuid4()).status_code == 409


class TestErrorToDict:
    def test_domain_error(self):
        exc = NegativeQuantityError(uuid4(), "api_calls", Decimal("-1"))
        result = error_to_dict(exc)
        assert result["code"] == "NEGATIVE_QUANTITY"
        assert result["status_code"] == 422
        assert result["detail"] == exc.detail

    def test_unexpected_error(self):
        result = error_to_dict(RuntimeError("db down"))
        assert result == {"code": "INTERNAL_ERROR", "detail": "db down", "status_code": 500}
