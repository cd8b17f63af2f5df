"""Dependency injection container for the billing engine.

Wires together the storage adapters, the pure calculation engine and the
application services, selecting SQL or in-memory storage from settings.
"""

from __future__ import annotations

import logging

from application.services.billing_run_service import BillingRunService
from application.services.invoicing_service import InvoicingService
from domain.services.billing_engine import InvoiceCalculationEngine
from infrastructure.adapters import (
    InMemoryBillingConfigRepository,
    InMemoryInvoiceRepository,
    InMemoryMinimumChargeRuleRepository,
    InMemoryOrganisationRepository,
    InMemoryPricingRuleRepository,
    InMemoryUsageAggregateRepository,
)
from infrastructure.settings import AppSettings, get_settings

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Central DI container that owns all service instances."""

    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings or get_settings()
        self.engine = None

        if self._settings.storage_backend == "memory":
            self._wire_in_memory()
        else:
            self._wire_sql()

        # Domain services
        self.calculation_engine = InvoiceCalculationEngine()

        # Application services
        self.invoicing_service = InvoicingService(
            pricing_rule_repo=self.pricing_rule_repo,
            minimum_charge_repo=self.minimum_charge_repo,
            billing_config_repo=self.billing_config_repo,
            usage_repo=self.usage_repo,
            invoice_repo=self.invoice_repo,
            engine=self.calculation_engine,
            skip_empty_invoices=self._settings.skip_empty_invoices,
        )

        self.billing_run_service = BillingRunService(
            invoicing_service=self.invoicing_service,
            organisation_repo=self.organisation_repo,
            max_concurrency=self._settings.max_concurrency,
        )

        logger.info(
            "ServiceContainer initialized (storage=%s, max_concurrency=%d)",
            self._settings.storage_backend,
            self._settings.max_concurrency,
        )

    @property
    def settings(self) -> AppSettings:
        return self._settings

    def _wire_in_memory(self) -> None:
        self.organisation_repo = InMemoryOrganisationRepository()
        self.pricing_rule_repo = InMemoryPricingRuleRepository()
        self.minimum_charge_repo = InMemoryMinimumChargeRuleRepository()
        self.billing_config_repo = InMemoryBillingConfigRepository()
        self.usage_repo = InMemoryUsageAggregateRepository()
        self.invoice_repo = InMemoryInvoiceRepository()

    def _wire_sql(self) -> None:
        from infrastructure.database.engine import build_session_factory, build_sync_engine
        from infrastructure.database.repository import (
            SqlBillingConfigRepository,
            SqlInvoiceRepository,
            SqlMinimumChargeRuleRepository,
            SqlOrganisationRepository,
            SqlPricingRuleRepository,
            SqlUsageAggregateRepository,
        )

        self.engine = build_sync_engine(self._settings)
        self.session_factory = build_session_factory(self.engine)
        self.organisation_repo = SqlOrganisationRepository(self.session_factory)
        self.pricing_rule_repo = SqlPricingRuleRepository(self.session_factory)
        self.minimum_charge_repo = SqlMinimumChargeRuleRepository(self.session_factory)
        self.billing_config_repo = SqlBillingConfigRepository(self.session_factory)
        self.usage_repo = SqlUsageAggregateRepository(self.session_factory)
        self.invoice_repo = SqlInvoiceRepository(self.session_factory)

    def dispose(self) -> None:
        """Close pooled database connections, if any."""
        if self.engine is not None:
            self.engine.dispose()


# Module-level singleton
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Return the global container singleton."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """Reset the global container (for testing)."""
    global _container
    if _container is not None:
        _container.dispose()
    _container = None
