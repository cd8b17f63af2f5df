"""Integration test fixtures: the SQLAlchemy repositories against a real database.

Every test runs on SQLite; the PostgreSQL variant runs when a
testcontainers-managed database can be started (Docker available).
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from infrastructure.database.engine import (  # noqa: E402
    build_session_factory,
    build_sync_engine,
    create_schema,
    session_scope,
)
from infrastructure.database.models import (  # noqa: E402
    Base,
    BillingConfigModel,
    OrganisationModel,
    PricingRuleModel,
    UsageAggregateModel,
)
from infrastructure.settings import AppSettings  # noqa: E402


@pytest.fixture(scope="session")
def postgres_url():
    """Provide a PostgreSQL URL via testcontainers, or skip without Docker."""
    try:
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer("postgres:16-alpine") as pg:
            yield pg.get_connection_url()
    except Exception:
        pytest.skip("PostgreSQL testcontainer unavailable")


@pytest.fixture(params=["sqlite", "postgresql"])
def database_url(request, tmp_path):
    if request.param == "sqlite":
        return f"sqlite:///{tmp_path / 'billing.db'}"
    return request.getfixturevalue("postgres_url")


@pytest.fixture
def sync_engine(database_url):
    engine = build_sync_engine(AppSettings(database_url=database_url))
    create_schema(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(sync_engine):
    return build_session_factory(sync_engine)


@pytest.fixture
def seed(session_factory):
    """Insert an organisation with its config, pricing rule and usage; returns its id."""

    def _seed(
        quantity: str = "10000",
        price: str = "0.002",
        tax_rate: str = "0.18",
        month: int = 7,
        year: int = 2025,
        is_active: bool = True,
        organisation_id: UUID | None = None,
    ) -> UUID:
        org_id = organisation_id or uuid4()
        with session_scope(session_factory) as session:
            session.add(OrganisationModel(id=org_id, name=f"org-{org_id.hex}", is_active=is_active))
            session.flush()
            session.add(
                BillingConfigModel(
                    organisation_id=org_id,
                    tax_rate=Decimal(tax_rate),
                    currency="INR",
                    payment_terms_days=30,
                )
            )
            session.add(
                PricingRuleModel(
                    organisation_id=org_id,
                    metric_name="api_calls",
                    unit="call",
                    price_per_unit=Decimal(price),
                    currency="INR",
                    effective_from=datetime(2025, 1, 1, tzinfo=timezone.utc),
                )
            )
            session.add(
                UsageAggregateModel(
                    organisation_id=org_id,
                    project_id=uuid4(),
                    metric_name="api_calls",
                    unit="call",
                    quantity=Decimal(quantity),
                    month=month,
                    year=year,
                )
            )
        return org_id

    return _seed
