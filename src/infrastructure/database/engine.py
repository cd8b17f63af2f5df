"""
SQLAlchemy engine and session-factory setup.

Billing runs are synchronous and fan out over threads, so the engine uses
a pooled synchronous driver and every repository call opens its own
session from the shared factory.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import get_database_url, is_sqlite
from .models import Base

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from infrastructure.settings import AppSettings

# ---------------------------------------------------------------------------
# Engine factories
# ---------------------------------------------------------------------------


def build_sync_engine(settings: AppSettings) -> Engine:
    """Create a synchronous SQLAlchemy :class:`Engine`.

    PostgreSQL gets a :class:`QueuePool` sized from settings.  An in-memory
    SQLite database must live on a single shared connection; a file-backed
    one may be opened from any worker thread.
    """
    url = get_database_url(settings)
    if is_sqlite(url):
        in_memory = url in ("sqlite://", "sqlite+pysqlite://") or ":memory:" in url
        return sa_create_engine(
            url,
            poolclass=StaticPool if in_memory else None,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return sa_create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=False,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    """Create every billing table that does not exist yet."""
    Base.metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Yield a :class:`Session`, committing on success and rolling back on error."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
