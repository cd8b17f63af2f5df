"""Unit tests for InvoicingService: snapshot loading, idempotent persistence, finalisation."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from application.services.invoicing_service import InvoiceOutcome, InvoicingService
from domain.exceptions.billing_exceptions import (
    InvalidConfigError,
    InvoiceAlreadyFinalizedError,
    InvoiceNotFoundError,
    RuleNotFoundError,
)
from domain.models.invoice import InvoiceStatus


@pytest.fixture
def priced_org(repos, add_organisation, make_rule, make_aggregate):
    """An organisation with 10,000 API calls at 0.002 INR."""

    def _make(quantity: str = "10000", **config_overrides):
        org = add_organisation(**config_overrides)
        repos["pricing_rules"].add(make_rule("0.002"))
        repos["usage"].add(make_aggregate(quantity, organisation_id=org))
        return org

    return _make


class TestPreview:

    def test_preview_does_not_persist(self, invoicing_service, repos, priced_org, period):
        org = priced_org()
        invoice = invoicing_service.preview_invoice(org, period)
        assert invoice.total == Decimal("23.60")
        assert repos["invoices"].list_all() == []

    def test_snapshot_contains_only_this_organisation(
        self, invoicing_service, repos, priced_org, make_rule, period
    ):
        org = priced_org()
        other = priced_org()
        repos["pricing_rules"].add(make_rule("0.001", organisation_id=other))
        snapshot = invoicing_service.load_snapshot(org, period)
        assert all(a.organisation_id == org for a in snapshot.usage_aggregates)
        assert all(r.organisation_id in (None, org) for r in snapshot.pricing_rules)

    def test_missing_config_raises(self, invoicing_service, period):
        with pytest.raises(InvalidConfigError):
            invoicing_service.preview_invoice(uuid4(), period)

    def test_config_without_tax_rate_raises(self, invoicing_service, repos, period):
        org = uuid4()
        repos["configs"].put(org, {"organisation_id": str(org), "currency": "INR"})
        with pytest.raises(InvalidConfigError) as excinfo:
            invoicing_service.preview_invoice(org, period)
        assert excinfo.value.errors[0]["field"] == "tax_rate"


class TestGenerateInvoice:

    def test_first_run_generates(self, invoicing_service, repos, priced_org, period):
        org = priced_org()
        result = invoicing_service.generate_invoice(org, period)
        assert result.outcome is InvoiceOutcome.GENERATED
        stored = repos["invoices"].get(result.invoice_id)
        assert stored.status is InvoiceStatus.DRAFT
        assert stored.invoice.total == Decimal("23.60")

    def test_rerun_is_unchanged(self, invoicing_service, repos, priced_org, period):
        org = priced_org()
        first = invoicing_service.generate_invoice(org, period)
        second = invoicing_service.generate_invoice(org, period)
        assert second.outcome is InvoiceOutcome.UNCHANGED
        assert second.invoice_id == first.invoice_id
        assert len(repos["invoices"].list_all()) == 1

    def test_changed_usage_regenerates_draft(
        self, invoicing_service, repos, priced_org, make_aggregate, period
    ):
        org = priced_org()
        first = invoicing_service.generate_invoice(org, period)
        repos["usage"].add(make_aggregate("5000", organisation_id=org, metric="api_calls"))
        second = invoicing_service.generate_invoice(org, period)
        assert second.outcome is InvoiceOutcome.REGENERATED
        assert second.invoice_id == first.invoice_id
        stored = repos["invoices"].get(first.invoice_id)
        assert stored.invoice.subtotal == Decimal("30.00")
        assert len(repos["invoices"].list_all()) == 1

    def test_changed_finalized_invoice_conflicts(
        self, invoicing_service, repos, priced_org, make_aggregate, period
    ):
        org = priced_org()
        first = invoicing_service.generate_invoice(org, period)
        invoicing_service.finalize_invoice(first.invoice_id)
        repos["usage"].add(make_aggregate("5000", organisation_id=org))
        with pytest.raises(InvoiceAlreadyFinalizedError):
            invoicing_service.generate_invoice(org, period)
        assert repos["invoices"].get(first.invoice_id).invoice.subtotal == Decimal("20.00")

    def test_unchanged_finalized_invoice_is_fine(self, invoicing_service, priced_org, period):
        org = priced_org()
        first = invoicing_service.generate_invoice(org, period)
        invoicing_service.finalize_invoice(first.invoice_id)
        assert invoicing_service.generate_invoice(org, period).outcome is InvoiceOutcome.UNCHANGED

    def test_empty_invoice_skipped(self, invoicing_service, repos, add_organisation, period):
        org = add_organisation()
        result = invoicing_service.generate_invoice(org, period)
        assert result.outcome is InvoiceOutcome.SKIPPED
        assert result.invoice_id is None
        assert repos["invoices"].list_all() == []

    def test_minimum_only_invoice_is_not_empty(self, invoicing_service, add_organisation, period):
        org = add_organisation(minimum_charge_enabled=True, minimum_charge_amount="25.00")
        result = invoicing_service.generate_invoice(org, period)
        assert result.outcome is InvoiceOutcome.GENERATED
        assert result.invoice.subtotal_after_minimum == Decimal("25.00")

    def test_empty_invoice_kept_when_skipping_disabled(self, repos, engine, add_organisation, period):
        svc = InvoicingService(
            pricing_rule_repo=repos["pricing_rules"],
            minimum_charge_repo=repos["minimum_charges"],
            billing_config_repo=repos["configs"],
            usage_repo=repos["usage"],
            invoice_repo=repos["invoices"],
            engine=engine,
            skip_empty_invoices=False,
        )
        result = svc.generate_invoice(add_organisation(), period)
        assert result.outcome is InvoiceOutcome.GENERATED
        assert result.invoice.line_items == ()

    def test_failure_persists_nothing(
        self, invoicing_service, repos, add_organisation, make_aggregate, period
    ):
        org = add_organisation()
        repos["usage"].add(make_aggregate("1", organisation_id=org, metric="unpriced"))
        with pytest.raises(RuleNotFoundError):
            invoicing_service.generate_invoice(org, period)
        assert repos["invoices"].list_all() == []


class TestFinalizeInvoice:

    def test_finalize_draft(self, invoicing_service, priced_org, period):
        result = invoicing_service.generate_invoice(priced_org(), period)
        stored = invoicing_service.finalize_invoice(result.invoice_id)
        assert stored.status is InvoiceStatus.FINALIZED
        assert stored.finalized_at is not None

    def test_finalize_twice_rejected(self, invoicing_service, priced_org, period):
        result = invoicing_service.generate_invoice(priced_org(), period)
        invoicing_service.finalize_invoice(result.invoice_id)
        with pytest.raises(InvoiceNotFoundError):
            invoicing_service.finalize_invoice(result.invoice_id)

    def test_finalize_unknown(self, invoicing_service):
        with pytest.raises(InvoiceNotFoundError):
            invoicing_service.finalize_invoice(uuid4())


class TestCancelInvoice:

    def test_cancelled_invoice_frees_its_period(self, invoicing_service, repos, priced_org, period):
        org = priced_org()
        first = invoicing_service.generate_invoice(org, period)
        cancelled = invoicing_service.cancel_invoice(first.invoice_id)
        assert cancelled.status is InvoiceStatus.CANCELLED

        again = invoicing_service.generate_invoice(org, period)
        assert again.outcome is InvoiceOutcome.GENERATED
        assert again.invoice_id != first.invoice_id
        assert repos["invoices"].get(first.invoice_id).status is InvoiceStatus.CANCELLED
        assert len(repos["invoices"].list_all()) == 2

    def test_changed_usage_after_cancel_generates_fresh_invoice(
        self, invoicing_service, repos, priced_org, make_aggregate, period
    ):
        org = priced_org()
        first = invoicing_service.generate_invoice(org, period)
        invoicing_service.cancel_invoice(first.invoice_id)
        repos["usage"].add(make_aggregate("5000", organisation_id=org))

        again = invoicing_service.generate_invoice(org, period)
        assert again.outcome is InvoiceOutcome.GENERATED
        assert again.invoice.subtotal == Decimal("30.00")
        assert repos["invoices"].get(first.invoice_id).invoice.subtotal == Decimal("20.00")

    def test_finalized_invoice_can_be_cancelled(self, invoicing_service, priced_org, period):
        result = invoicing_service.generate_invoice(priced_org(), period)
        invoicing_service.finalize_invoice(result.invoice_id)
        assert invoicing_service.cancel_invoice(result.invoice_id).status is InvoiceStatus.CANCELLED

    def test_cancel_twice_is_a_no_op(self, invoicing_service, priced_org, period):
        result = invoicing_service.generate_invoice(priced_org(), period)
        first = invoicing_service.cancel_invoice(result.invoice_id)
        second = invoicing_service.cancel_invoice(result.invoice_id)
        assert second.status is InvoiceStatus.CANCELLED
        assert second.updated_at == first.updated_at

    def test_cancel_unknown(self, invoicing_service):
        with pytest.raises(InvoiceNotFoundError):
            invoicing_service.cancel_invoice(uuid4())
