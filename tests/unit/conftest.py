"""Shared fixtures for unit tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest

# Ensure src is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from application.services.invoicing_service import InvoicingService
from domain.models.period import BillingPeriod
from domain.models.pricing import BillingConfig, MinimumChargeRule, PricingRule, UsageAggregate
from domain.services.billing_engine import BillingSnapshot, InvoiceCalculationEngine
from infrastructure.adapters import (
    InMemoryBillingConfigRepository,
    InMemoryInvoiceRepository,
    InMemoryMinimumChargeRuleRepository,
    InMemoryOrganisationRepository,
    InMemoryPricingRuleRepository,
    InMemoryUsageAggregateRepository,
)

ORG_ID = UUID("00000000-0000-0000-0000-00000000000a")
OTHER_ORG_ID = UUID("00000000-0000-0000-0000-00000000000b")
PROJECT_ID = UUID("00000000-0000-0000-0000-000000000101")
JAN_2025 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def org_id() -> UUID:
    return ORG_ID


@pytest.fixture
def period() -> BillingPeriod:
    return BillingPeriod(month=7, year=2025)


@pytest.fixture
def make_rule():
    def _make(
        price: str = "1.00",
        metric: str = "api_calls",
        unit: str = "call",
        organisation_id: UUID | None = None,
        effective_from: datetime = JAN_2025,
        effective_to: datetime | None = None,
        currency: str = "INR",
        is_active: bool = True,
        rule_id: UUID | None = None,
    ) -> PricingRule:
        return PricingRule(
            id=rule_id or uuid4(),
            organisation_id=organisation_id,
            metric_name=metric,
            unit=unit,
            price_per_unit=Decimal(price),
            currency=currency,
            effective_from=effective_from,
            effective_to=effective_to,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_minimum_rule():
    def _make(
        amount: str = "100.00",
        organisation_id: UUID | None = None,
        effective_from: datetime = JAN_2025,
        effective_to: datetime | None = None,
        currency: str = "INR",
        is_active: bool = True,
    ) -> MinimumChargeRule:
        return MinimumChargeRule(
            minimum_amount=Decimal(amount),
            organisation_id=organisation_id,
            effective_from=effective_from,
            effective_to=effective_to,
            currency=currency,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_aggregate(period):
    def _make(
        quantity: str = "1",
        metric: str = "api_calls",
        unit: str = "call",
        organisation_id: UUID = ORG_ID,
        project_id: UUID = PROJECT_ID,
        month: int | None = None,
        year: int | None = None,
    ) -> UsageAggregate:
        return UsageAggregate(
            organisation_id=organisation_id,
            project_id=project_id,
            metric_name=metric,
            unit=unit,
            quantity=Decimal(quantity),
            month=month or period.month,
            year=year or period.year,
        )

    return _make


@pytest.fixture
def make_config():
    def _make(
        tax_rate: str = "0.18",
        organisation_id: UUID = ORG_ID,
        currency: str = "INR",
        payment_terms_days: int = 30,
        minimum_charge_enabled: bool = False,
        minimum_charge_amount: str | None = None,
    ) -> BillingConfig:
        return BillingConfig(
            organisation_id=organisation_id,
            tax_rate=Decimal(tax_rate),
            currency=currency,
            payment_terms_days=payment_terms_days,
            minimum_charge_enabled=minimum_charge_enabled,
            minimum_charge_amount=(
                Decimal(minimum_charge_amount) if minimum_charge_amount is not None else None
            ),
        )

    return _make


@pytest.fixture
def make_snapshot(period, make_config):
    def _make(
        pricing_rules=(),
        usage_aggregates=(),
        minimum_charge_rules=(),
        billing_config: BillingConfig | None = None,
        organisation_id: UUID = ORG_ID,
        reference_date: datetime | None = None,
        billing_period: BillingPeriod | None = None,
    ) -> BillingSnapshot:
        return BillingSnapshot(
            organisation_id=organisation_id,
            period=billing_period or period,
            billing_config=billing_config or make_config(organisation_id=organisation_id),
            pricing_rules=tuple(pricing_rules),
            minimum_charge_rules=tuple(minimum_charge_rules),
            usage_aggregates=tuple(usage_aggregates),
            reference_date=reference_date,
        )

    return _make


@pytest.fixture
def engine() -> InvoiceCalculationEngine:
    return InvoiceCalculationEngine()


# ---------------------------------------------------------------------------
# In-memory wiring for application-service tests
# ---------------------------------------------------------------------------


def config_record(organisation_id: UUID = ORG_ID, **overrides) -> dict:
    record = {
        "organisation_id": str(organisation_id),
        "tax_rate": "0.18",
        "currency": "INR",
        "billing_cycle": "monthly",
        "payment_terms_days": 30,
        "minimum_charge_enabled": False,
        "minimum_charge_amount": None,
    }
    record.update(overrides)
    return record


@pytest.fixture
def repos():
    return {
        "organisations": InMemoryOrganisationRepository(),
        "pricing_rules": InMemoryPricingRuleRepository(),
        "minimum_charges": InMemoryMinimumChargeRuleRepository(),
        "configs": InMemoryBillingConfigRepository(),
        "usage": InMemoryUsageAggregateRepository(),
        "invoices": InMemoryInvoiceRepository(),
    }


@pytest.fixture
def invoicing_service(repos, engine) -> InvoicingService:
    return InvoicingService(
        pricing_rule_repo=repos["pricing_rules"],
        minimum_charge_repo=repos["minimum_charges"],
        billing_config_repo=repos["configs"],
        usage_repo=repos["usage"],
        invoice_repo=repos["invoices"],
        engine=engine,
    )


@pytest.fixture
def add_organisation(repos):
    """Register an organisation with a valid config; returns its id."""

    def _add(organisation_id: UUID | None = None, **config_overrides) -> UUID:
        org = organisation_id or uuid4()
        repos["organisations"].add(org)
        repos["configs"].put(org, config_record(org, **config_overrides))
        return org

    return _add
