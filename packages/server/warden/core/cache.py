"""
Resolution cache placed in front of the permission resolver.

Entries are stored under a per-project generation number. Invalidating a
project bumps its generation, so:

- the next lookup after an invalidation never sees an older entry, and
- a resolution computed before the invalidation (and stored afterwards) lands
  under the old generation, where no lookup will ever find it.

Invalidation is awaited by the mutating call before it returns.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from warden_shared.schemas.permissions import (
    Permission,
    UnknownPermissionError,
    parse_permissions,
    sorted_permissions,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class CacheLookup:
    generation: int
    permissions: Optional[frozenset[Permission]] = None

    @property
    def hit(self) -> bool:
        return self.permissions is not None


class PermissionCache(Protocol):
    async def lookup(self, project_id: uuid.UUID, user_id: uuid.UUID) -> CacheLookup: ...

    async def store(
        self,
        project_id: uuid.UUID,
        user_id: uuid.UUID,
        generation: int,
        permissions: frozenset[Permission],
    ) -> None: ...

    async def invalidate(self, project_id: uuid.UUID) -> None: ...

    async def close(self) -> None: ...


class NullPermissionCache:
    """Always misses; every resolve goes to storage."""

    async def lookup(self, project_id: uuid.UUID, user_id: uuid.UUID) -> CacheLookup:
        return CacheLookup(generation=0)

    async def store(self, project_id, user_id, generation, permissions) -> None:
        return None

    async def invalidate(self, project_id: uuid.UUID) -> None:
        return None

    async def close(self) -> None:
        return None


class MemoryPermissionCache:
    """In-process cache for single-worker deployments and tests."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._generations: dict[uuid.UUID, int] = {}
        self._entries: dict[tuple[uuid.UUID, uuid.UUID], tuple[int, float, frozenset[Permission]]] = {}

    def generation(self, project_id: uuid.UUID) -> int:
        return self._generations.get(project_id, 0)

    async def lookup(self, project_id: uuid.UUID, user_id: uuid.UUID) -> CacheLookup:
        generation = self.generation(project_id)
        entry = self._entries.get((project_id, user_id))
        if entry is None:
            return CacheLookup(generation)
        entry_generation, stored_at, permissions = entry
        if entry_generation != generation:
            return CacheLookup(generation)
        if self._ttl is not None and self._clock() - stored_at > self._ttl:
            self._entries.pop((project_id, user_id), None)
            return CacheLookup(generation)
        return CacheLookup(generation, frozenset(permissions))

    async def store(
        self,
        project_id: uuid.UUID,
        user_id: uuid.UUID,
        generation: int,
        permissions: frozenset[Permission],
    ) -> None:
        if generation != self.generation(project_id):
            # Computed before an invalidation; discard
            return
        self._entries[(project_id, user_id)] = (generation, self._clock(), frozenset(permissions))

    async def invalidate(self, project_id: uuid.UUID) -> None:
        self._generations[project_id] = self.generation(project_id) + 1
        for key in [k for k in self._entries if k[0] == project_id]:
            del self._entries[key]

    async def close(self) -> None:
        self._entries.clear()


class RedisPermissionCache:
    """Cache shared between workers.

    Keys:
    - ``{prefix}:gen:{project_id}`` - integer generation, bumped with INCR
    - ``{prefix}:perm:{project_id}:{generation}:{user_id}`` - JSON list, TTL-bound
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        ttl_seconds: int = 300,
        prefix: str = "warden:authz",
    ):
        self._client = client
        self._ttl = ttl_seconds
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, *, ttl_seconds: int = 300) -> "RedisPermissionCache":
        return cls(redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    def _generation_key(self, project_id: uuid.UUID) -> str:
        return f"{self._prefix}:gen:{project_id}"

    def _entry_key(self, project_id: uuid.UUID, generation: int, user_id: uuid.UUID) -> str:
        return f"{self._prefix}:perm:{project_id}:{generation}:{user_id}"

    async def lookup(self, project_id: uuid.UUID, user_id: uuid.UUID) -> CacheLookup:
        try:
            raw_generation = await self._client.get(self._generation_key(project_id))
            generation = int(raw_generation) if raw_generation else 0
            raw = await self._client.get(self._entry_key(project_id, generation, user_id))
        except RedisError as exc:
            # A cache outage degrades to storage reads. The -1 generation
            # makes the following store a no-op.
            log.warning("cache.lookup_failed", project_id=str(project_id), error=str(exc))
            return CacheLookup(generation=-1)

        if raw is None:
            return CacheLookup(generation)
        try:
            permissions = parse_permissions(json.loads(raw))
        except (ValueError, TypeError, UnknownPermissionError):
            log.warning("cache.corrupt_entry", project_id=str(project_id), user_id=str(user_id))
            return CacheLookup(generation)
        return CacheLookup(generation, permissions)

    async def store(
        self,
        project_id: uuid.UUID,
        user_id: uuid.UUID,
        generation: int,
        permissions: frozenset[Permission],
    ) -> None:
        if generation < 0:
            return
        payload = json.dumps([p.value for p in sorted_permissions(permissions)])
        try:
            await self._client.set(
                self._entry_key(project_id, generation, user_id),
                payload,
                ex=self._ttl,
            )
        except RedisError as exc:
            log.warning("cache.store_failed", project_id=str(project_id), error=str(exc))

    async def invalidate(self, project_id: uuid.UUID) -> None:
        # Errors propagate to the mutating caller
        try:
            await self._client.incr(self._generation_key(project_id))
        except RedisError:
            log.error("cache.invalidate_failed", project_id=str(project_id))
            raise

    async def close(self) -> None:
        await self._client.aclose()


def build_cache(backend: str, *, redis_url: str = "", ttl_seconds: int = 300) -> PermissionCache:
    if backend == "redis":
        return RedisPermissionCache.from_url(redis_url, ttl_seconds=ttl_seconds)
    if backend == "memory":
        return MemoryPermissionCache(ttl_seconds=ttl_seconds)
    return NullPermissionCache()
