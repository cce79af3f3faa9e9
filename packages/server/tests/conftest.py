"""
Shared fixtures: a throwaway SQLite database per test and a fully wired
service container on top of it.

A file database (not :memory:) so concurrent tasks get separate connections
and really race each other.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from warden.core.cache import MemoryPermissionCache
from warden.core.config import Settings
from warden.core.database import Storage, build_engine, init_db
from warden.models.base import utcnow
from warden.services import Services, build_services
from warden_shared.schemas.organizations import OrgCreateRequest
from warden_shared.schemas.permissions import Permission
from warden_shared.schemas.projects import ProjectCreate

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


class FakeClock:
    """Controllable UTC clock for expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class World:
    """An org with one project, as seen by its owner."""

    owner_id: uuid.UUID
    org_id: uuid.UUID
    project_id: uuid.UUID


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'warden.db'}",
        secret_key=TEST_SECRET,
        cache_backend="memory",
        token_hash_rounds=4,
        storage_timeout_seconds=10.0,
        log_format="text",
    )


@pytest.fixture
async def storage(settings):
    store = Storage(build_engine(settings.database_url), default_timeout=settings.storage_timeout_seconds)
    await init_db(store)
    yield store
    await store.close()


@pytest.fixture
def cache() -> MemoryPermissionCache:
    return MemoryPermissionCache()


@pytest.fixture
def services(storage, cache, settings) -> Services:
    return build_services(storage, cache, settings)


@pytest.fixture
async def world(services) -> World:
    owner_id = uuid.uuid4()
    org = await services.organizations.create_organization(
        owner_id, OrgCreateRequest(name="Acme", slug="acme")
    )
    project = await services.projects.create_project(
        owner_id, org.id, ProjectCreate(name="Web", slug="web")
    )
    return World(owner_id=owner_id, org_id=org.id, project_id=project.id)


async def add_member_with(
    services: Services,
    world: World,
    permissions: set[Permission],
    *,
    role_name: str | None = None,
) -> uuid.UUID:
    """Create a role with ``permissions`` and a new member holding it."""
    role = await services.roles.create_role(
        world.owner_id,
        world.project_id,
        role_name or f"role-{uuid.uuid4().hex[:8]}",
        permissions,
    )
    user_id = uuid.uuid4()
    await services.memberships.add_project_member(
        world.owner_id, world.project_id, user_id, role.id
    )
    return user_id


def aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
