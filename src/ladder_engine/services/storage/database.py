"""Engine construction and conflict classification for the ladder store."""

from __future__ import annotations

import threading
import weakref
from contextlib import AbstractContextManager, nullcontext
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import NullPool, StaticPool
from sqlmodel import SQLModel, create_engine

from ladder_engine.core.errors import UnsupportedDatabaseError

# Import models so their tables are registered on SQLModel.metadata.
from ladder_engine.models import Activity, Challenge, LiveMatch, Member  # noqa: F401

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

# SQLSTATEs for serialization_failure and deadlock_detected.
_PG_RETRYABLE_CODES = {"40001", "40P01"}
_SQLITE_RETRYABLE_MESSAGES = ("database is locked", "database is busy", "database table is locked")

# Engines whose sessions all share one DBAPI connection.
_SHARED_CONNECTION_LOCKS: weakref.WeakKeyDictionary[Engine, threading.Lock] = (
    weakref.WeakKeyDictionary()
)


def create_ladder_engine(url: str, lock_timeout_seconds: float = 5.0) -> Engine:
    """Create an engine whose transactions serialise ladder writes.

    SQLite transactions open with ``BEGIN IMMEDIATE`` so the write lock is held
    from the first read; PostgreSQL runs at SERIALIZABLE isolation.

    Args:
        url: SQLAlchemy database URL.
        lock_timeout_seconds: How long a writer waits for the lock before the
            attempt is reported as a conflict.

    Returns:
        Configured engine.
    """
    if url.startswith("sqlite"):
        return _create_sqlite_engine(url, lock_timeout_seconds)
    if url.startswith("postgresql"):
        return create_engine(url, isolation_level="SERIALIZABLE", pool_pre_ping=True)
    raise UnsupportedDatabaseError(url)


def _create_sqlite_engine(url: str, lock_timeout_seconds: float) -> Engine:
    in_memory = url in ("sqlite://", "sqlite:///:memory:")
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": lock_timeout_seconds},
        # A single shared connection keeps an in-memory database alive.
        poolclass=StaticPool if in_memory else NullPool,
    )
    if in_memory:
        _SHARED_CONNECTION_LOCKS[engine] = threading.Lock()

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        # Hand transaction control to the "begin" hook below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def session_lock(engine: Engine) -> AbstractContextManager[Any]:
    """Lock to hold around a session on ``engine``.

    In-memory SQLite shares one connection between every worker thread, so
    each session must own it exclusively from BEGIN to COMMIT. Other engines
    get a no-op context.
    """
    lock = _SHARED_CONNECTION_LOCKS.get(engine)
    return lock if lock is not None else nullcontext()


def init_schema(engine: Engine) -> None:
    """Create all ladder tables if they are missing."""
    with session_lock(engine):
        SQLModel.metadata.create_all(engine)
    logger.info("schema_ready", url=str(engine.url))


def is_conflict(exc: BaseException) -> bool:
    """Whether a database error is a transient lock or serialization conflict."""
    if not isinstance(exc, DBAPIError):
        return False
    code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    if code in _PG_RETRYABLE_CODES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _SQLITE_RETRYABLE_MESSAGES)
