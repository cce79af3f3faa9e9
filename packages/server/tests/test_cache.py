"""
Resolution cache tests: generation semantics of the memory backend and the
Redis backend against a mocked client.
"""

from __future__ import annotations

import json
import uuid
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from warden.core.cache import (
    MemoryPermissionCache,
    NullPermissionCache,
    RedisPermissionCache,
    build_cache,
)
from warden_shared.schemas.permissions import Permission

PERMS = frozenset({Permission.TEAM_READ, Permission.DATABASE_READ})


class TestMemoryCache:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self):
        cache = MemoryPermissionCache()
        pid, uid = uuid.uuid4(), uuid.uuid4()

        lookup = await cache.lookup(pid, uid)
        assert not lookup.hit
        await cache.store(pid, uid, lookup.generation, PERMS)

        again = await cache.lookup(pid, uid)
        assert again.hit
        assert again.permissions == PERMS

    @pytest.mark.asyncio
    async def test_invalidate_hides_entries(self):
        cache = MemoryPermissionCache()
        pid, uid = uuid.uuid4(), uuid.uuid4()
        lookup = await cache.lookup(pid, uid)
        await cache.store(pid, uid, lookup.generation, PERMS)

        await cache.invalidate(pid)

        assert not (await cache.lookup(pid, uid)).hit
        assert cache.generation(pid) == 1

    @pytest.mark.asyncio
    async def test_store_from_before_invalidation_is_dropped(self):
        """A resolution that raced an invalidation must never be served."""
        cache = MemoryPermissionCache()
        pid, uid = uuid.uuid4(), uuid.uuid4()
        stale = await cache.lookup(pid, uid)

        await cache.invalidate(pid)
        await cache.store(pid, uid, stale.generation, PERMS)

        assert not (await cache.lookup(pid, uid)).hit

    @pytest.mark.asyncio
    async def test_invalidation_is_per_project(self):
        cache = MemoryPermissionCache()
        p1, p2, uid = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        for pid in (p1, p2):
            lookup = await cache.lookup(pid, uid)
            await cache.store(pid, uid, lookup.generation, PERMS)

        await cache.invalidate(p1)

        assert not (await cache.lookup(p1, uid)).hit
        assert (await cache.lookup(p2, uid)).hit

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        now = [100.0]
        cache = MemoryPermissionCache(ttl_seconds=10, clock=lambda: now[0])
        pid, uid = uuid.uuid4(), uuid.uuid4()
        lookup = await cache.lookup(pid, uid)
        await cache.store(pid, uid, lookup.generation, PERMS)

        now[0] += 11
        assert not (await cache.lookup(pid, uid)).hit


class TestNullCache:
    @pytest.mark.asyncio
    async def test_always_misses(self):
        cache = NullPermissionCache()
        pid, uid = uuid.uuid4(), uuid.uuid4()
        await cache.store(pid, uid, 0, PERMS)
        assert not (await cache.lookup(pid, uid)).hit


class TestRedisCache:
    @pytest.mark.asyncio
    async def test_hit_reads_generation_then_entry(self):
        pid, uid = uuid.uuid4(), uuid.uuid4()
        client = AsyncMock()
        client.get.side_effect = ["3", json.dumps(["database.read", "team.read"])]
        cache = RedisPermissionCache(client, ttl_seconds=60)

        lookup = await cache.lookup(pid, uid)

        assert lookup.generation == 3
        assert lookup.permissions == PERMS
        assert client.get.await_args_list[1].args[0] == f"warden:authz:perm:{pid}:3:{uid}"

    @pytest.mark.asyncio
    async def test_store_writes_under_generation_with_ttl(self):
        pid, uid = uuid.uuid4(), uuid.uuid4()
        client = AsyncMock()
        cache = RedisPermissionCache(client, ttl_seconds=60)

        await cache.store(pid, uid, 2, PERMS)

        client.set.assert_awaited_once_with(
            f"warden:authz:perm:{pid}:2:{uid}",
            json.dumps(["database.read", "team.read"]),
            ex=60,
        )

    @pytest.mark.asyncio
    async def test_lookup_failure_degrades_to_miss_and_skips_store(self):
        pid, uid = uuid.uuid4(), uuid.uuid4()
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("down")
        cache = RedisPermissionCache(client)

        lookup = await cache.lookup(pid, uid)
        assert not lookup.hit
        await cache.store(pid, uid, lookup.generation, PERMS)

        client.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self):
        client = AsyncMock()
        client.get.side_effect = [None, json.dumps(["root"])]
        cache = RedisPermissionCache(client)

        lookup = await cache.lookup(uuid.uuid4(), uuid.uuid4())

        assert lookup.generation == 0
        assert not lookup.hit

    @pytest.mark.asyncio
    async def test_invalidate_bumps_generation(self):
        pid = uuid.uuid4()
        client = AsyncMock()
        cache = RedisPermissionCache(client)

        await cache.invalidate(pid)

        client.incr.assert_awaited_once_with(f"warden:authz:gen:{pid}")

    @pytest.mark.asyncio
    async def test_invalidate_failure_propagates(self):
        client = AsyncMock()
        client.incr.side_effect = RedisConnectionError("down")
        cache = RedisPermissionCache(client)

        with pytest.raises(RedisConnectionError):
            await cache.invalidate(uuid.uuid4())


def test_build_cache_backends():
    assert isinstance(build_cache("memory"), MemoryPermissionCache)
    assert isinstance(build_cache("none"), NullPermissionCache)
    assert isinstance(
        build_cache("redis", redis_url="redis://localhost:6379/0"), RedisPermissionCache
    )
