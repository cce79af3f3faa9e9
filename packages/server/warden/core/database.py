"""
Database engine and the storage handle passed to every service.

Services never reach for a global session; they receive a ``Storage`` at
construction and run each operation as one transaction through
``Storage.run``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from warden.core.errors import StorageConflict, StorageTimeout

log = structlog.get_logger()

T = TypeVar("T")

# Driver messages that mean another transaction won a race; safe to retry
_CONFLICT_MARKERS = (
    "database is locked",
    "could not serialize access",
    "deadlock detected",
)


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for the configured database."""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            future=True,
            connect_args={"timeout": 30},
        )
        _configure_sqlite(engine)
        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        future=True,
        pool_pre_ping=True,
    )


def _configure_sqlite(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable the driver's implicit BEGIN so _on_begin controls it
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        # Writers take the lock up front instead of upgrading mid-transaction
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _is_conflict(exc: DBAPIError) -> bool:
    message = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


class Storage:
    """Transactional handle to the relational store."""

    def __init__(self, engine: AsyncEngine, *, default_timeout: float | None = 5.0):
        self.engine = engine
        self.default_timeout = default_timeout
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def run(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        timeout: float | None = None,
        readonly: bool = False,
        retry_on_conflict: bool = False,
    ) -> T:
        """Run ``work`` inside a single transaction.

        Commits when ``work`` returns, rolls back when it raises. A timeout
        raises StorageTimeout (marked indeterminate unless ``readonly``).
        Driver-level conflicts raise StorageConflict, retried once with a fresh
        transaction when ``retry_on_conflict`` is set.
        """
        attempts = 2 if retry_on_conflict else 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._run_once(work, timeout=timeout, readonly=readonly)
            except StorageConflict:
                if attempt >= attempts:
                    raise
                log.info("storage.conflict_retry", attempt=attempt)
        raise AssertionError("unreachable")

    async def _run_once(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        timeout: float | None,
        readonly: bool,
    ) -> T:
        limit = self.default_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(self._transaction(work), limit)
        except asyncio.TimeoutError as exc:
            log.warning("storage.timeout", timeout=limit, readonly=readonly)
            raise StorageTimeout(indeterminate=not readonly) from exc
        except PoolTimeoutError as exc:
            # No connection was obtained, so nothing was written
            log.warning("storage.pool_timeout")
            raise StorageTimeout("No database connection available", indeterminate=False) from exc
        except DBAPIError as exc:
            if _is_conflict(exc):
                raise StorageConflict() from exc
            raise

    async def _transaction(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                return await work(session)

    async def close(self) -> None:
        await self.engine.dispose()


async def init_db(storage: Storage) -> None:
    """Create all tables (development and tests; use migrations in production)."""
    import warden.models  # noqa: F401  registers tables on SQLModel.metadata

    async with storage.engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
