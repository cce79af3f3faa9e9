"""
Access gate: the single enforcement point in front of every protected operation.

Two entry points share the resolver's algorithm:

- ``require_all`` / ``allowed`` for callers outside a transaction (HTTP
  handlers, other services' read paths). Resolution goes through the cache.
- ``check`` for mutations, run inside the mutation's own transaction so the
  decision and the write see the same data.

The gate fails closed: any error while deciding becomes AccessDenied, except
storage timeouts and conflicts, which propagate so callers can retry.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from warden.core.database import Storage
from warden.core.errors import AccessDenied, StorageConflict, StorageTimeout
from warden.models.organization import Organization
from warden.models.organization_member import OrganizationMember
from warden.services.resolver import PermissionResolver, compute_permissions
from warden_shared.schemas.common import OrgRole
from warden_shared.schemas.permissions import Permission, sorted_permissions

log = structlog.get_logger()


class AccessGate:
    def __init__(self, resolver: PermissionResolver, storage: Storage):
        self._resolver = resolver
        self._storage = storage

    # ------------------------------------------------------------------
    # Project permissions
    # ------------------------------------------------------------------

    async def require_all(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        needed: Iterable[Permission],
        *,
        timeout: float | None = None,
    ) -> frozenset[Permission]:
        """Succeed iff ``needed`` is a subset of the user's effective permissions.

        Returns the effective set so callers can avoid a second resolve.
        """
        needed = frozenset(needed)
        try:
            granted = await self._resolver.resolve(user_id, project_id, timeout=timeout)
        except (StorageTimeout, StorageConflict):
            raise
        except Exception as exc:
            log.warning(
                "access.resolve_failed",
                user_id=str(user_id),
                project_id=str(project_id),
                error=type(exc).__name__,
            )
            raise AccessDenied() from exc
        self._enforce(user_id, project_id, granted, needed)
        return granted

    async def allowed(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        needed: Iterable[Permission],
        *,
        timeout: float | None = None,
    ) -> bool:
        try:
            await self.require_all(user_id, project_id, needed, timeout=timeout)
        except AccessDenied:
            return False
        return True

    async def check(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        needed: Iterable[Permission],
    ) -> frozenset[Permission]:
        """In-transaction variant of ``require_all`` (no cache)."""
        needed = frozenset(needed)
        try:
            granted = await compute_permissions(session, user_id, project_id)
        except (StorageTimeout, StorageConflict):
            raise
        except Exception as exc:
            log.warning(
                "access.resolve_failed",
                user_id=str(user_id),
                project_id=str(project_id),
                error=type(exc).__name__,
            )
            raise AccessDenied() from exc
        self._enforce(user_id, project_id, granted, needed)
        return granted

    def _enforce(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        granted: frozenset[Permission],
        needed: frozenset[Permission],
    ) -> None:
        missing = needed - granted
        if missing:
            # Missing permissions are logged server-side only
            log.info(
                "access.denied",
                user_id=str(user_id),
                project_id=str(project_id),
                missing=[p.value for p in sorted_permissions(missing)],
            )
            raise AccessDenied()

    # ------------------------------------------------------------------
    # Organization roles
    # ------------------------------------------------------------------

    async def require_organization_role(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        roles: Iterable[OrgRole],
        *,
        timeout: float | None = None,
    ) -> OrgRole:
        roles = frozenset(roles)

        async def work(session: AsyncSession) -> OrgRole:
            return await self.check_organization_role(session, user_id, organization_id, roles)

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def check_organization_role(
        self,
        session: AsyncSession,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        roles: Iterable[OrgRole],
    ) -> OrgRole:
        """Return the caller's organization role, or deny.

        The organization's ``owner_id`` always counts as owner.
        """
        roles = frozenset(roles)
        org = await session.get(Organization, organization_id)
        if org is None:
            log.info("access.denied", user_id=str(user_id), organization_id=str(organization_id))
            raise AccessDenied()

        if org.owner_id == user_id:
            role = OrgRole.OWNER
        else:
            result = await session.execute(
                select(OrganizationMember.role).where(
                    OrganizationMember.organization_id == organization_id,
                    OrganizationMember.user_id == user_id,
                )
            )
            value = result.scalar_one_or_none()
            try:
                role = OrgRole(value) if value is not None else None
            except ValueError as exc:
                log.warning(
                    "access.resolve_failed",
                    user_id=str(user_id),
                    organization_id=str(organization_id),
                    error=type(exc).__name__,
                )
                raise AccessDenied() from exc

        if role is None or role not in roles:
            log.info(
                "access.denied",
                user_id=str(user_id),
                organization_id=str(organization_id),
                role=role.value if role else None,
            )
            raise AccessDenied()
        return role
