"""
Storage handle tests: transactions, timeouts and conflict retries.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from warden.core.database import Storage
from warden.core.errors import StorageConflict, StorageTimeout
from warden.models.organization import Organization


def _locked() -> OperationalError:
    return OperationalError("INSERT ...", {}, Exception("database is locked"))


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit_on_return(self, storage: Storage):
        async def create(session):
            session.add(Organization(name="A", slug="a-org", owner_id=uuid.uuid4()))

        await storage.run(create)

        async def count(session):
            result = await session.execute(select(Organization))
            return len(result.scalars().all())

        assert await storage.run(count, readonly=True) == 1

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, storage: Storage):
        async def create_then_fail(session):
            session.add(Organization(name="A", slug="a-org", owner_id=uuid.uuid4()))
            await session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await storage.run(create_then_fail)

        async def count(session):
            result = await session.execute(select(Organization))
            return len(result.scalars().all())

        assert await storage.run(count, readonly=True) == 0


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_write_timeout_is_indeterminate(self, storage: Storage):
        async def slow(session):
            await asyncio.sleep(1)

        with pytest.raises(StorageTimeout) as exc_info:
            await storage.run(slow, timeout=0.05)
        assert exc_info.value.indeterminate is True
        assert exc_info.value.to_dict()["indeterminate"] is True

    @pytest.mark.asyncio
    async def test_read_timeout_is_determinate(self, storage: Storage):
        async def slow(session):
            await asyncio.sleep(1)

        with pytest.raises(StorageTimeout) as exc_info:
            await storage.run(slow, timeout=0.05, readonly=True)
        assert exc_info.value.indeterminate is False


class TestConflicts:
    @pytest.mark.asyncio
    async def test_driver_lock_error_becomes_conflict(self, storage: Storage):
        async def work(session):
            raise _locked()

        with pytest.raises(StorageConflict):
            await storage.run(work)

    @pytest.mark.asyncio
    async def test_conflict_retried_once(self, storage: Storage):
        calls = []

        async def work(session):
            calls.append(1)
            if len(calls) == 1:
                raise _locked()
            return "ok"

        assert await storage.run(work, retry_on_conflict=True) == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_conflict_retry_gives_up(self, storage: Storage):
        calls = []

        async def work(session):
            calls.append(1)
            raise StorageConflict()

        with pytest.raises(StorageConflict):
            await storage.run(work, retry_on_conflict=True)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_other_driver_errors_propagate(self, storage: Storage):
        async def work(session):
            raise OperationalError("SELECT", {}, Exception("no such table: nope"))

        with pytest.raises(OperationalError):
            await storage.run(work, retry_on_conflict=True)
