"""Unit tests for the service container wiring."""

from __future__ import annotations

import pytest

from infrastructure import container as container_module
from infrastructure.adapters import InMemoryInvoiceRepository
from infrastructure.container import ServiceContainer, get_container, reset_container
from infrastructure.database.repository import SqlInvoiceRepository
from infrastructure.settings import AppSettings


@pytest.fixture(autouse=True)
def _reset():
    reset_container()
    yield
    reset_container()


class TestServiceContainer:
    def test_memory_wiring(self, period):
        c = ServiceContainer(AppSettings(storage_backend="memory", max_concurrency=2))
        assert isinstance(c.invoice_repo, InMemoryInvoiceRepository)
        assert c.engine is None
        assert c.billing_run_service.run(period).total == 0

    def test_sql_wiring(self):
        c = ServiceContainer(AppSettings(storage_backend="sql", database_url="sqlite://"))
        assert isinstance(c.invoice_repo, SqlInvoiceRepository)
        assert c.engine is not None
        c.dispose()

    def test_singleton(self, monkeypatch):
        monkeypatch.setenv("BILLING_STORAGE_BACKEND", "memory")
        assert get_container() is get_container()

    def test_reset(self, monkeypatch):
        monkeypatch.setenv("BILLING_STORAGE_BACKEND", "memory")
        first = get_container()
        reset_container()
        assert container_module._container is None
        assert get_container() is not first
