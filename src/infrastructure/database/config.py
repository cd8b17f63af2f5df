"""
Database configuration for the billing engine.

Builds the SQLAlchemy URL from :class:`~infrastructure.settings.AppSettings`.
An explicit ``BILLING_DATABASE_URL`` wins over the ``postgres_*`` parts, which
is how tests and local runs point the engine at SQLite.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from infrastructure.settings import AppSettings


def get_database_url(settings: AppSettings) -> str:
    """Return the synchronous SQLAlchemy URL for *settings*.

    Parameters
    ----------
    settings:
        Application settings.  ``database_url`` is used verbatim when set;
        otherwise a ``postgresql+psycopg2://`` DSN is assembled.
    """
    if settings.database_url:
        return settings.database_url
    return (
        f"postgresql+psycopg2://{settings.postgres_user}:{settings.postgres_password}"
        f"@{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db}"
    )


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")
