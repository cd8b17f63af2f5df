"""Adapter implementations bridging infrastructure to application-layer ports.

In-memory repositories for local runs, wiring checks and tests. They honour
the same contracts as the SQLAlchemy repositories in
:mod:`infrastructure.database.repository`, including the one-invoice-per-period
rule, and are safe to share between billing-run worker threads.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Optional
from uuid import UUID

from domain.exceptions.billing_exceptions import DuplicateInvoiceError
from domain.models.invoice import InvoiceStatus, StoredInvoice
from domain.models.pricing import MinimumChargeRule, PricingRule, UsageAggregate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Organisations
# ---------------------------------------------------------------------------

class InMemoryOrganisationRepository:
    """Organisation ids in insertion order, with an active flag."""

    def __init__(self) -> None:
        self._store: dict[UUID, bool] = {}

    def add(self, organisation_id: UUID, is_active: bool = True) -> None:
        self._store[organisation_id] = is_active

    def list_active_ids(self) -> list[UUID]:
        return [org_id for org_id, active in self._store.items() if active]


# ---------------------------------------------------------------------------
# Configuration repositories
# ---------------------------------------------------------------------------

class InMemoryPricingRuleRepository:
    def __init__(self) -> None:
        self._rules: list[PricingRule] = []

    def add(self, *rules: PricingRule) -> None:
        self._rules.extend(rules)

    def list_for_organisation(self, organisation_id: UUID) -> list[PricingRule]:
        return [
            r for r in self._rules
            if r.organisation_id is None or r.organisation_id == organisation_id
        ]


class InMemoryMinimumChargeRuleRepository:
    def __init__(self) -> None:
        self._rules: list[MinimumChargeRule] = []

    def add(self, *rules: MinimumChargeRule) -> None:
        self._rules.extend(rules)

    def list_for_organisation(self, organisation_id: UUID) -> list[MinimumChargeRule]:
        return [
            r for r in self._rules
            if r.organisation_id is None or r.organisation_id == organisation_id
        ]


class InMemoryBillingConfigRepository:
    """Holds raw config records; validation happens in the invoicing service."""

    def __init__(self) -> None:
        self._store: dict[UUID, dict[str, Any]] = {}

    def put(self, organisation_id: UUID, record: dict[str, Any]) -> None:
        self._store[organisation_id] = dict(record)

    def get(self, organisation_id: UUID) -> Optional[dict[str, Any]]:
        record = self._store.get(organisation_id)
        return dict(record) if record is not None else None


class InMemoryUsageAggregateRepository:
    def __init__(self) -> None:
        self._store: list[UsageAggregate] = []

    def add(self, *aggregates: UsageAggregate) -> None:
        self._store.extend(aggregates)

    def list_for_period(self, organisation_id: UUID, month: int, year: int) -> list[UsageAggregate]:
        return [
            a for a in self._store
            if a.organisation_id == organisation_id and a.month == month and a.year == year
        ]


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

class InMemoryInvoiceRepository:
    """Invoice store keyed by id.

    At most one invoice per (organisation, month, year) is live; cancelled
    invoices are kept but free their period. Stored objects are copied on the
    way in and out so callers cannot mutate persisted state without going
    through :meth:`replace`.
    """

    def __init__(self) -> None:
        self._store: dict[UUID, StoredInvoice] = {}
        self._by_period: dict[tuple[UUID, int, int], UUID] = {}
        self._lock = threading.Lock()

    def get(self, invoice_id: UUID) -> Optional[StoredInvoice]:
        with self._lock:
            stored = self._store.get(invoice_id)
            return copy.copy(stored) if stored else None

    def get_by_organisation_and_period(
        self, organisation_id: UUID, month: int, year: int
    ) -> Optional[StoredInvoice]:
        with self._lock:
            invoice_id = self._by_period.get((organisation_id, month, year))
            return copy.copy(self._store[invoice_id]) if invoice_id else None

    def save(self, stored: StoredInvoice) -> StoredInvoice:
        with self._lock:
            self._claim_period(stored)
            self._store[stored.id] = copy.copy(stored)
        logger.debug("Stored invoice %s", stored.invoice.invoice_number)
        return stored

    def replace(self, stored: StoredInvoice) -> StoredInvoice:
        with self._lock:
            if stored.id not in self._store:
                raise KeyError(f"Invoice {stored.id} does not exist")
            self._claim_period(stored)
            self._store[stored.id] = copy.copy(stored)
        return stored

    def _claim_period(self, stored: StoredInvoice) -> None:
        # Caller holds the lock.
        key = (stored.organisation_id, stored.month, stored.year)
        holder = self._by_period.get(key)
        if stored.status is InvoiceStatus.CANCELLED:
            if holder == stored.id:
                del self._by_period[key]
            return
        if holder is not None and holder != stored.id:
            raise DuplicateInvoiceError(*key)
        self._by_period[key] = stored.id

    def list_all(self) -> list[StoredInvoice]:
        with self._lock:
            return [copy.copy(s) for s in self._store.values()]
