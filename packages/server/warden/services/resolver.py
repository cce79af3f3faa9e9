"""
Permission resolver: effective permissions of a user on a project.

Precedence, highest first:

1. owner of the project's organization  -> full catalog
2. organization owner/admin membership  -> full catalog
3. no project membership                -> nothing
4. project membership without a role    -> nothing
5. project membership with a role       -> that role's permission set

``compute_permissions`` is the only implementation of this algorithm. The
resolver wraps it with caching and read retries; the access gate calls it
directly inside write transactions.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from warden.core.cache import NullPermissionCache, PermissionCache
from warden.core.database import Storage
from warden.core.errors import InvalidPermission, NotFound, StorageConflict, StorageTimeout
from warden.models.custom_role import CustomRole
from warden.models.organization import Organization
from warden.models.organization_member import OrganizationMember
from warden.models.project import Project
from warden.models.project_member import ProjectMember
from warden_shared.schemas.common import ORG_MANAGER_ROLES
from warden_shared.schemas.permissions import (
    Permission,
    UnknownPermissionError,
    all_permissions,
    parse_permissions,
)

log = structlog.get_logger()

_FULL_ACCESS_ROLES = {role.value for role in ORG_MANAGER_ROLES}


def role_permissions(role: CustomRole) -> frozenset[Permission]:
    """Validated permission set of a stored role row."""
    try:
        return parse_permissions(role.permissions or [])
    except UnknownPermissionError as exc:
        log.error("role.corrupt_permissions", role_id=str(role.id), values=exc.values)
        raise InvalidPermission(str(exc)) from exc


async def compute_permissions(
    session: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID
) -> frozenset[Permission]:
    result = await session.execute(
        select(Project.organization_id, Organization.owner_id)
        .join(Organization, Organization.id == Project.organization_id)
        .where(Project.id == project_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFound("Project not found")
    organization_id, owner_id = row

    if owner_id == user_id:
        return all_permissions()

    result = await session.execute(
        select(OrganizationMember.role).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    org_role = result.scalar_one_or_none()
    if org_role in _FULL_ACCESS_ROLES:
        return all_permissions()

    result = await session.execute(
        select(ProjectMember.custom_role_id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    membership = result.one_or_none()
    if membership is None:
        return frozenset()

    role_id = membership[0]
    if role_id is None:
        return frozenset()

    role = await session.get(CustomRole, role_id)
    if role is None or role.project_id != project_id:
        log.error(
            "resolver.role_mismatch",
            project_id=str(project_id),
            role_id=str(role_id),
        )
        return frozenset()
    return frozenset(role_permissions(role))


class PermissionResolver:
    """Read-only, lock-free resolution with an optional invalidating cache."""

    def __init__(
        self,
        storage: Storage,
        cache: PermissionCache | None = None,
        *,
        read_retries: int = 1,
    ):
        self._storage = storage
        self._cache = cache or NullPermissionCache()
        self._read_retries = read_retries

    async def resolve(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> frozenset[Permission]:
        lookup = await self._cache.lookup(project_id, user_id)
        if lookup.permissions is not None:
            return frozenset(lookup.permissions)

        permissions = await self._read(user_id, project_id, timeout)
        await self._cache.store(project_id, user_id, lookup.generation, permissions)
        return frozenset(permissions)

    async def _read(
        self, user_id: uuid.UUID, project_id: uuid.UUID, timeout: float | None
    ) -> frozenset[Permission]:
        async def work(session: AsyncSession) -> frozenset[Permission]:
            return await compute_permissions(session, user_id, project_id)

        attempts = 1 + self._read_retries
        for attempt in range(1, attempts + 1):
            try:
                return await self._storage.run(work, timeout=timeout, readonly=True)
            except (StorageConflict, StorageTimeout) as exc:
                if attempt >= attempts:
                    raise
                log.info(
                    "resolver.retry",
                    project_id=str(project_id),
                    attempt=attempt,
                    error_kind=exc.kind.value,
                )
        raise AssertionError("unreachable")
