"""
SQLAlchemy 2.0+ ORM models for the billing engine.

Schema layout
-------------
* Configuration (read by the engine)
    - ``organisations``
    - ``pricing_rules``         -- global (``organisation_id IS NULL``) or org-scoped
    - ``minimum_charge_rules``
    - ``billing_configs``       -- one row per organisation
    - ``usage_aggregates``      -- monthly usage per project and metric
* Output (written by the invoicing service)
    - ``invoices``              -- one live (not cancelled) per organisation and period
    - ``invoice_line_items``

Column types are the portable SQLAlchemy ones (``Uuid``, ``JSON``) so the
same metadata runs on PostgreSQL in production and SQLite in tests.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

from domain.models.invoice import InvoiceStatus
from domain.models.pricing import BillingCycle

# Amounts are held at four places, enough for every ISO 4217 minor unit.
MONEY = Numeric(18, 4)
QUANTITY = Numeric(24, 8)
RATE = Numeric(7, 6)

PERIOD_INDEX_NAME = "uq_invoices_active_period"
# Enum columns store member names.
_NOT_CANCELLED = f"status <> '{InvoiceStatus.CANCELLED.name}'"


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base for every ORM model."""
    pass


# ---------------------------------------------------------------------------
# OrganisationModel
# ---------------------------------------------------------------------------

class OrganisationModel(Base):
    __tablename__ = "organisations"
    __table_args__ = (
        Index("ix_organisations_is_active", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organisation(id={self.id!r}, name={self.name!r})>"


# ---------------------------------------------------------------------------
# PricingRuleModel
# ---------------------------------------------------------------------------

class PricingRuleModel(Base):
    """Per-unit price for a metric over an effective date range."""

    __tablename__ = "pricing_rules"
    __table_args__ = (
        Index(
            "ix_pricing_rules_lookup",
            "organisation_id",
            "metric_name",
            "effective_from",
        ),
        CheckConstraint(
            "price_per_unit >= 0", name="ck_pricing_rules_price_non_negative"
        ),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="ck_pricing_rules_effective_range",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("organisations.id", ondelete="CASCADE"), nullable=True
    )
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_to: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    metadata_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<PricingRule(id={self.id!r}, metric={self.metric_name!r}, "
            f"price={self.price_per_unit!r} {self.currency})>"
        )


# ---------------------------------------------------------------------------
# MinimumChargeRuleModel
# ---------------------------------------------------------------------------

class MinimumChargeRuleModel(Base):
    __tablename__ = "minimum_charge_rules"
    __table_args__ = (
        Index("ix_minimum_charge_rules_lookup", "organisation_id", "effective_from"),
        CheckConstraint(
            "minimum_amount >= 0", name="ck_minimum_charge_rules_amount_non_negative"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("organisations.id", ondelete="CASCADE"), nullable=True
    )
    minimum_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_to: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# ---------------------------------------------------------------------------
# BillingConfigModel
# ---------------------------------------------------------------------------

class BillingConfigModel(Base):
    """Tax, currency and payment terms for one organisation."""

    __tablename__ = "billing_configs"
    __table_args__ = (
        CheckConstraint(
            "tax_rate >= 0 AND tax_rate <= 1", name="ck_billing_configs_tax_rate_range"
        ),
        CheckConstraint(
            "payment_terms_days > 0", name="ck_billing_configs_payment_terms_positive"
        ),
    )

    organisation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organisations.id", ondelete="CASCADE"), primary_key=True
    )
    tax_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        Enum(BillingCycle, name="billing_cycle", native_enum=False, length=20),
        nullable=False,
        default=BillingCycle.MONTHLY,
    )
    payment_terms_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    minimum_charge_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    minimum_charge_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


# ---------------------------------------------------------------------------
# UsageAggregateModel
# ---------------------------------------------------------------------------

class UsageAggregateModel(Base):
    """Monthly usage total for one project and metric."""

    __tablename__ = "usage_aggregates"
    __table_args__ = (
        UniqueConstraint(
            "organisation_id",
            "project_id",
            "metric_name",
            "unit",
            "month",
            "year",
            name="uq_usage_aggregates_period_metric",
        ),
        Index("ix_usage_aggregates_org_period", "organisation_id", "year", "month"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_usage_aggregates_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organisations.id", ondelete="RESTRICT"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)


# ---------------------------------------------------------------------------
# InvoiceModel
# ---------------------------------------------------------------------------

class InvoiceModel(Base):
    """Monthly invoice issued to an organisation."""

    __tablename__ = "invoices"
    __table_args__ = (
        # Cancelled invoices stay for the record; the period may be invoiced again.
        Index(
            PERIOD_INDEX_NAME,
            "organisation_id",
            "month",
            "year",
            unique=True,
            postgresql_where=text(_NOT_CANCELLED),
            sqlite_where=text(_NOT_CANCELLED),
        ),
        Index("ix_invoices_invoice_number", "invoice_number"),
        Index("ix_invoices_status", "status"),
        CheckConstraint("total >= 0", name="ck_invoices_total_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organisations.id", ondelete="RESTRICT"), nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, name="invoice_status", native_enum=False, length=20),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    minimum_charge: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    subtotal_after_minimum: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    pricing_rule_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    minimum_charge_rule_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    line_items: Mapped[List["InvoiceLineItemModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItemModel.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id!r}, number={self.invoice_number!r}, "
            f"status={self.status!r})>"
        )


# ---------------------------------------------------------------------------
# InvoiceLineItemModel
# ---------------------------------------------------------------------------

class InvoiceLineItemModel(Base):
    __tablename__ = "invoice_line_items"
    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_invoice_line_items_number"),
        CheckConstraint("quantity >= 0", name="ck_invoice_line_items_quantity_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    pricing_rule_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    usage_aggregate_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    invoice: Mapped["InvoiceModel"] = relationship(back_populates="line_items")
