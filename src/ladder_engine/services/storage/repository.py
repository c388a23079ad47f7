"""Shared async repository helpers for SQLModel session work."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError
from sqlmodel import Session
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ladder_engine.core.config import StorageConfig
from ladder_engine.core.errors import StorageConflictError

from .database import is_conflict, session_lock

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

T = TypeVar("T")


class AsyncRepository:
    """Wrap sync SQLModel session work for async callers.

    Reads run in a plain session. Writes run through ``_run_transaction``,
    which commits once at the end and retries the whole unit of work when the
    store reports a lock or serialization conflict.
    """

    def __init__(self, engine: Engine, storage: StorageConfig | None = None) -> None:
        self._engine = engine
        self._storage = storage or StorageConfig()

    async def _run_session(self, fn: Callable[[Session], T]) -> T:
        """Run a sync function inside a Session on a worker thread."""

        def _run() -> T:
            with session_lock(self._engine):
                with Session(self._engine, expire_on_commit=False) as session:
                    return fn(session)

        return await asyncio.to_thread(_run)

    async def _run_transaction(self, fn: Callable[[Session], T]) -> T:
        """Run ``fn`` in one transaction, committing only if it returns.

        Args:
            fn: Unit of work. Any exception it raises rolls the transaction back.

        Returns:
            Whatever ``fn`` returned.

        Raises:
            StorageConflictError: If every attempt hit a conflict.
        """

        def _run() -> T:
            with session_lock(self._engine):
                with Session(self._engine, expire_on_commit=False) as session:
                    try:
                        result = fn(session)
                        session.commit()
                    except DBAPIError as exc:
                        session.rollback()
                        if is_conflict(exc):
                            raise StorageConflictError(str(exc.orig)) from exc
                        raise
                    return result

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._storage.max_attempts),
            wait=wait_exponential(
                multiplier=self._storage.retry_min_wait_seconds,
                min=self._storage.retry_min_wait_seconds,
                max=self._storage.retry_max_wait_seconds,
            ),
            retry=retry_if_exception_type(StorageConflictError),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await asyncio.to_thread(_run)
        raise AssertionError("unreachable")  # pragma: no cover


def _log_retry(retry_state) -> None:
    logger.warning(
        "transaction_conflict_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )
