"""Ledger database engine and request-scoped sessions."""
from __future__ import annotations

import logging
from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from payledger.config import get_settings
from payledger.models.base import Base

logger = logging.getLogger(__name__)

engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver specific
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    SQLite connections are shared across the threadpool that serves sync
    routes and get foreign keys switched on; server databases get
    ``pool_pre_ping`` so a restarted database does not fail the next webhook.
    """

    if database_url.startswith("sqlite"):
        new_engine = create_engine(
            database_url, future=True, connect_args={"check_same_thread": False}
        )
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)
        return new_engine
    return create_engine(database_url, future=True, pool_pre_ping=True)


def build_sessionmaker(bind: Engine) -> sessionmaker[Session]:
    # Services commit per transition and keep using the rows afterwards.
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def init_engine() -> Engine:
    """Create the process-wide engine from settings, once."""

    global engine, SessionLocal
    if engine is None:
        engine = build_engine(get_settings().database_url)
        SessionLocal = build_sessionmaker(engine)
        logger.info("Database engine initialised", extra={"dialect": engine.dialect.name})
    return engine


def get_engine() -> Engine:
    return engine if engine is not None else init_engine()


def create_all() -> None:
    """Create the ledger and order tables without migrations (dev only)."""

    Base.metadata.create_all(bind=get_engine())


def close_engine() -> None:
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request.

    Work left uncommitted when the request fails is rolled back so a half
    applied transition never leaks into the pooled connection.
    """

    init_engine()
    assert SessionLocal is not None  # for type-checkers
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "Base",
    "build_engine",
    "build_sessionmaker",
    "close_engine",
    "create_all",
    "get_db",
    "get_engine",
    "init_engine",
]
