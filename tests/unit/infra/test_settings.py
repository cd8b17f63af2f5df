"""Unit tests for AppSettings and the database URL builder."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from infrastructure.database.config import get_database_url
from infrastructure.settings import AppSettings


class TestAppSettings:
    def test_defaults(self):
        s = AppSettings()
        assert s.max_concurrency == 8
        assert s.skip_empty_invoices is True
        assert s.storage_backend == "sql"
        assert s.metrics_port == 0

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("BILLING_MAX_CONCURRENCY", "3")
        monkeypatch.setenv("BILLING_STORAGE_BACKEND", "memory")
        s = AppSettings()
        assert s.max_concurrency == 3
        assert s.storage_backend == "memory"

    def test_concurrency_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("BILLING_MAX_CONCURRENCY", "0")
        with pytest.raises(ValidationError):
            AppSettings()


class TestDatabaseUrl:
    def test_built_from_parts(self):
        s = AppSettings(postgres_host="db", postgres_user="u", postgres_password="p")
        assert get_database_url(s) == "postgresql+psycopg2://u:p@db:5432/billing"

    def test_explicit_url_wins(self):
        s = AppSettings(database_url="sqlite://")
        assert get_database_url(s) == "sqlite://"
