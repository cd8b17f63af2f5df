"""
Repository implementations for the billing engine.

Each repository implements one of the application-layer ports and opens a
short-lived :class:`Session` from an injected ``sessionmaker`` per call, so
a single repository instance can be shared by every worker thread of a
billing run.  Rows are mapped to domain dataclasses on the way out; nothing
outside this module sees an ORM object.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from application.schemas.billing_schemas import (
    load_minimum_charge_rules,
    load_pricing_rules,
    load_usage_aggregates,
)
from domain.exceptions.billing_exceptions import DuplicateInvoiceError
from domain.models.invoice import (
    CalculatedInvoice,
    CalculatedLineItem,
    InvoiceStatus,
    StoredInvoice,
)
from domain.models.pricing import MinimumChargeRule, PricingRule, UsageAggregate
from domain.services.money import multiply

from .models import (
    PERIOD_INDEX_NAME,
    BillingConfigModel,
    InvoiceLineItemModel,
    InvoiceModel,
    MinimumChargeRuleModel,
    OrganisationModel,
    PricingRuleModel,
    UsageAggregateModel,
)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _plain_decimal(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


# SQLite names the columns instead of the index.
_SQLITE_PERIOD_COLUMNS = "invoices.organisation_id, invoices.month, invoices.year"


def _is_period_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return PERIOD_INDEX_NAME in message or _SQLITE_PERIOD_COLUMNS in message


# =========================================================================
# OrganisationRepository
# =========================================================================

class SqlOrganisationRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def list_active_ids(self) -> list[uuid.UUID]:
        stmt = (
            select(OrganisationModel.id)
            .where(OrganisationModel.is_active.is_(True))
            .order_by(OrganisationModel.created_at.asc(), OrganisationModel.id.asc())
        )
        with self._session_factory() as session:
            return list(session.execute(stmt).scalars().all())


# =========================================================================
# Configuration repositories (read-only)
# =========================================================================

class SqlPricingRuleRepository:
    """Pricing rules visible to an organisation: its own rows plus global ones.

    Rows pass through the boundary schemas, so a malformed rule surfaces as
    :class:`InvalidConfigError` for the organisation being billed. Filtering
    by metric, unit and effective date is left to the resolver so every
    decision it makes is testable without a database.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def list_for_organisation(self, organisation_id: uuid.UUID) -> list[PricingRule]:
        stmt = select(PricingRuleModel).where(
            or_(
                PricingRuleModel.organisation_id == organisation_id,
                PricingRuleModel.organisation_id.is_(None),
            )
        )
        with self._session_factory() as session:
            records = [self._to_record(row) for row in session.execute(stmt).scalars().all()]
        return list(load_pricing_rules(records, organisation_id))

    @staticmethod
    def _to_record(row: PricingRuleModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "organisation_id": row.organisation_id,
            "metric_name": row.metric_name,
            "unit": row.unit,
            "price_per_unit": row.price_per_unit,
            "currency": row.currency,
            "effective_from": row.effective_from,
            "effective_to": row.effective_to,
            "is_active": row.is_active,
            "metadata": row.metadata_json or {},
        }


class SqlMinimumChargeRuleRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def list_for_organisation(self, organisation_id: uuid.UUID) -> list[MinimumChargeRule]:
        stmt = select(MinimumChargeRuleModel).where(
            or_(
                MinimumChargeRuleModel.organisation_id == organisation_id,
                MinimumChargeRuleModel.organisation_id.is_(None),
            )
        )
        with self._session_factory() as session:
            records = [
                {
                    "id": row.id,
                    "organisation_id": row.organisation_id,
                    "minimum_amount": row.minimum_amount,
                    "currency": row.currency,
                    "effective_from": row.effective_from,
                    "effective_to": row.effective_to,
                    "is_active": row.is_active,
                    "description": row.description,
                }
                for row in session.execute(stmt).scalars().all()
            ]
        return list(load_minimum_charge_rules(records, organisation_id))


class SqlBillingConfigRepository:
    """Returns the raw record; the invoicing service validates it."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, organisation_id: uuid.UUID) -> Optional[dict[str, Any]]:
        with self._session_factory() as session:
            row = session.get(BillingConfigModel, organisation_id)
            if row is None:
                return None
            return {
                "organisation_id": row.organisation_id,
                "tax_rate": _plain_decimal(row.tax_rate),
                "currency": row.currency,
                "billing_cycle": row.billing_cycle.value,
                "payment_terms_days": row.payment_terms_days,
                "minimum_charge_enabled": row.minimum_charge_enabled,
                "minimum_charge_amount": _plain_decimal(row.minimum_charge_amount),
            }


class SqlUsageAggregateRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def list_for_period(
        self,
        organisation_id: uuid.UUID,
        month: int,
        year: int,
    ) -> list[UsageAggregate]:
        stmt = select(UsageAggregateModel).where(
            UsageAggregateModel.organisation_id == organisation_id,
            UsageAggregateModel.month == month,
            UsageAggregateModel.year == year,
        )
        with self._session_factory() as session:
            records = [
                {
                    "id": row.id,
                    "organisation_id": row.organisation_id,
                    "project_id": row.project_id,
                    "metric_name": row.metric_name,
                    "unit": row.unit,
                    "quantity": row.quantity,
                    "month": row.month,
                    "year": row.year,
                }
                for row in session.execute(stmt).scalars().all()
            ]
        return list(load_usage_aggregates(records, organisation_id))


# =========================================================================
# InvoiceRepository
# =========================================================================

class SqlInvoiceRepository:
    """Persists invoices with their line items in one transaction.

    Parameters
    ----------
    session_factory:
        A ``sessionmaker`` bound to the billing database.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, invoice_id: uuid.UUID) -> Optional[StoredInvoice]:
        with self._session_factory() as session:
            row = session.get(InvoiceModel, invoice_id)
            return self._to_domain(row) if row is not None else None

    def get_by_organisation_and_period(
        self,
        organisation_id: uuid.UUID,
        month: int,
        year: int,
    ) -> Optional[StoredInvoice]:
        stmt = select(InvoiceModel).where(
            InvoiceModel.organisation_id == organisation_id,
            InvoiceModel.month == month,
            InvoiceModel.year == year,
            InvoiceModel.status != InvoiceStatus.CANCELLED,
        )
        with self._session_factory() as session:
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_domain(row) if row is not None else None

    def save(self, stored: StoredInvoice) -> StoredInvoice:
        row = InvoiceModel(id=stored.id)
        self._apply(row, stored)
        with self._session_factory() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if not _is_period_conflict(exc):
                    raise
                raise DuplicateInvoiceError(
                    stored.organisation_id, stored.month, stored.year
                ) from exc
        return stored

    def replace(self, stored: StoredInvoice) -> StoredInvoice:
        with self._session_factory() as session:
            row = session.get(InvoiceModel, stored.id)
            if row is None:
                raise KeyError(f"Invoice {stored.id} does not exist")
            # Old lines go first so (invoice_id, line_number) stays unique.
            row.line_items.clear()
            session.flush()
            self._apply(row, stored)
            session.commit()
        return stored

    # ---- mapping -------------------------------------------------------

    @staticmethod
    def _apply(row: InvoiceModel, stored: StoredInvoice) -> None:
        invoice = stored.invoice
        row.organisation_id = invoice.organisation_id
        row.invoice_number = invoice.invoice_number
        row.month = invoice.month
        row.year = invoice.year
        row.period_start = invoice.period_start
        row.period_end = invoice.period_end
        row.due_date = invoice.due_date
        row.currency = invoice.currency
        row.status = stored.status
        row.subtotal = invoice.subtotal
        row.minimum_charge = invoice.minimum_charge
        row.subtotal_after_minimum = invoice.subtotal_after_minimum
        row.tax_rate = invoice.tax_rate
        row.tax_amount = invoice.tax_amount
        row.discount_amount = invoice.discount_amount
        row.total = invoice.total
        row.pricing_rule_ids = [str(rule_id) for rule_id in invoice.pricing_rule_ids]
        row.minimum_charge_rule_id = invoice.minimum_charge_rule_id
        row.created_at = stored.created_at
        row.updated_at = stored.updated_at
        row.finalized_at = stored.finalized_at
        row.line_items = [
            InvoiceLineItemModel(
                line_number=number,
                project_id=item.project_id,
                metric_name=item.metric_name,
                description=item.description,
                quantity=item.quantity,
                unit=item.unit,
                unit_price=item.unit_price,
                total=item.total,
                currency=item.currency,
                pricing_rule_id=item.pricing_rule_id,
                usage_aggregate_id=item.usage_aggregate_id,
            )
            for number, item in enumerate(invoice.line_items, start=1)
        ]

    @staticmethod
    def _to_domain(row: InvoiceModel) -> StoredInvoice:
        line_items = tuple(
            CalculatedLineItem(
                project_id=line.project_id,
                metric_name=line.metric_name,
                description=line.description,
                quantity=Decimal(line.quantity),
                unit=line.unit,
                unit_price=Decimal(line.unit_price),
                total=Decimal(line.total),
                # Not stored; recomputed from the stored factors.
                unrounded_total=multiply(Decimal(line.quantity), Decimal(line.unit_price)),
                currency=line.currency,
                pricing_rule_id=line.pricing_rule_id,
                usage_aggregate_id=line.usage_aggregate_id,
            )
            for line in row.line_items
        )
        invoice = CalculatedInvoice(
            organisation_id=row.organisation_id,
            invoice_number=row.invoice_number,
            month=row.month,
            year=row.year,
            period_start=row.period_start,
            period_end=row.period_end,
            due_date=row.due_date,
            currency=row.currency,
            line_items=line_items,
            subtotal=Decimal(row.subtotal),
            minimum_charge=Decimal(row.minimum_charge),
            subtotal_after_minimum=Decimal(row.subtotal_after_minimum),
            tax_rate=Decimal(row.tax_rate),
            tax_amount=Decimal(row.tax_amount),
            discount_amount=Decimal(row.discount_amount),
            total=Decimal(row.total),
            pricing_rule_ids=tuple(uuid.UUID(rule_id) for rule_id in row.pricing_rule_ids or ()),
            minimum_charge_rule_id=row.minimum_charge_rule_id,
        )
        return StoredInvoice(
            invoice=invoice,
            id=row.id,
            status=InvoiceStatus(row.status),
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
            finalized_at=_utc(row.finalized_at),
        )
