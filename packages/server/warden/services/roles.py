"""
Role store: CRUD for project-scoped custom roles.

Every write requires ``team.manage`` on the role's project, reads require
``team.read``. Permissions are validated against the catalog before anything
is written. At most one role per project is the default: setting a new
default demotes the previous one in the same transaction.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Optional

import structlog
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from warden.core.cache import PermissionCache
from warden.core.database import Storage
from warden.core.errors import (
    DuplicateName,
    InvalidPermission,
    NotFound,
    RoleInUse,
    StorageConflict,
)
from warden.models.base import utcnow
from warden.models.custom_role import CustomRole
from warden.models.invitation import Invitation
from warden.models.project_member import ProjectMember
from warden.services.gate import AccessGate
from warden.services.resolver import role_permissions
from warden_shared.schemas.common import InvitationStatus
from warden_shared.schemas.permissions import (
    Permission,
    UnknownPermissionError,
    parse_permissions,
    sorted_permissions,
)
from warden_shared.schemas.roles import RoleRead, RoleUpdate

log = structlog.get_logger()

MANAGE = frozenset({Permission.TEAM_MANAGE})
READ = frozenset({Permission.TEAM_READ})


def validate_permissions(values: Iterable[str | Permission]) -> frozenset[Permission]:
    try:
        return parse_permissions(values)
    except UnknownPermissionError as exc:
        raise InvalidPermission(str(exc)) from exc


def to_role_read(role: CustomRole) -> RoleRead:
    return RoleRead(
        id=role.id,
        project_id=role.project_id,
        name=role.name,
        description=role.description,
        permissions=role_permissions(role),
        is_default=role.is_default,
        created_at=role.created_at,
    )


async def _flush(session: AsyncSession) -> None:
    # Uniqueness was checked earlier in this transaction; a violation means a
    # concurrent writer won, and the retry re-runs the checks
    try:
        await session.flush()
    except IntegrityError as exc:
        raise StorageConflict() from exc


class RoleStore:
    def __init__(self, storage: Storage, gate: AccessGate, cache: PermissionCache):
        self._storage = storage
        self._gate = gate
        self._cache = cache

    async def create_role(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        name: str,
        permissions: Iterable[str | Permission],
        *,
        description: Optional[str] = None,
        is_default: bool = False,
        timeout: float | None = None,
    ) -> RoleRead:
        perms = validate_permissions(permissions)

        async def work(session: AsyncSession) -> RoleRead:
            await self._gate.check(session, actor_id, project_id, MANAGE)
            await self._ensure_name_free(session, project_id, name)
            if is_default:
                await self._clear_default(session, project_id)

            role = CustomRole(
                project_id=project_id,
                name=name,
                description=description,
                permissions=[p.value for p in sorted_permissions(perms)],
                is_default=is_default,
            )
            session.add(role)
            await _flush(session)
            return to_role_read(role)

        role = await self._storage.run(work, timeout=timeout, retry_on_conflict=True)
        log.info(
            "role.created",
            role_id=str(role.id),
            project_id=str(project_id),
            is_default=role.is_default,
            actor=str(actor_id),
        )
        return role

    async def update_role(
        self,
        actor_id: uuid.UUID,
        role_id: uuid.UUID,
        patch: RoleUpdate,
        *,
        project_id: uuid.UUID | None = None,
        timeout: float | None = None,
    ) -> RoleRead:
        """Apply the fields set on ``patch``.

        When ``project_id`` is given the role must belong to it (URL scoping).
        """
        fields = patch.model_fields_set
        perms = None
        if "permissions" in fields and patch.permissions is not None:
            perms = validate_permissions(patch.permissions)

        async def work(session: AsyncSession) -> tuple[RoleRead, bool]:
            role = await self._load(session, actor_id, role_id, project_id, MANAGE)
            permissions_changed = False

            # Demote first: the bulk UPDATE autoflushes pending changes
            if "is_default" in fields and patch.is_default is not None:
                if patch.is_default and not role.is_default:
                    await self._clear_default(session, role.project_id, exclude=role.id)
                role.is_default = patch.is_default
            if "name" in fields and patch.name is not None and patch.name != role.name:
                await self._ensure_name_free(session, role.project_id, patch.name)
                role.name = patch.name
            if "description" in fields:
                role.description = patch.description
            if perms is not None:
                new_values = [p.value for p in sorted_permissions(perms)]
                permissions_changed = new_values != list(role.permissions or [])
                role.permissions = new_values

            role.updated_at = utcnow()
            session.add(role)
            await _flush(session)
            return to_role_read(role), permissions_changed

        role, permissions_changed = await self._storage.run(
            work, timeout=timeout, retry_on_conflict=True
        )
        if permissions_changed:
            await self._cache.invalidate(role.project_id)
        log.info(
            "role.updated",
            role_id=str(role.id),
            project_id=str(role.project_id),
            fields=sorted(fields),
            actor=str(actor_id),
        )
        return role

    async def delete_role(
        self,
        actor_id: uuid.UUID,
        role_id: uuid.UUID,
        *,
        project_id: uuid.UUID | None = None,
        timeout: float | None = None,
    ) -> None:
        """Delete a role nobody holds.

        Fails with RoleInUse while any member or pending invitation references
        it. Pending invitations already past their expiry are expired first.
        """

        async def work(session: AsyncSession) -> uuid.UUID:
            role = await self._load(session, actor_id, role_id, project_id, MANAGE)

            now = utcnow()
            await session.execute(
                update(Invitation)
                .where(
                    Invitation.custom_role_id == role.id,
                    Invitation.status == InvitationStatus.PENDING.value,
                    Invitation.expires_at <= now,
                )
                .values(status=InvitationStatus.EXPIRED.value, resolved_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )

            members = await session.scalar(
                select(func.count()).select_from(ProjectMember).where(
                    ProjectMember.custom_role_id == role.id
                )
            )
            pending = await session.scalar(
                select(func.count()).select_from(Invitation).where(
                    Invitation.custom_role_id == role.id,
                    Invitation.status == InvitationStatus.PENDING.value,
                )
            )
            if members or pending:
                raise RoleInUse(
                    f"Role is held by {members} member(s) and {pending} pending invitation(s)"
                )

            await session.delete(role)
            try:
                await session.flush()
            except IntegrityError as exc:
                # A member was assigned concurrently (FK RESTRICT)
                raise RoleInUse() from exc
            return role.project_id

        role_project_id = await self._storage.run(work, timeout=timeout)
        await self._cache.invalidate(role_project_id)
        log.info(
            "role.deleted",
            role_id=str(role_id),
            project_id=str(role_project_id),
            actor=str(actor_id),
        )

    async def list_roles(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> list[RoleRead]:
        """Roles of a project, default first, then by case-folded name.

        The order is computed here so it does not depend on database collation.
        """

        async def work(session: AsyncSession) -> list[RoleRead]:
            await self._gate.check(session, actor_id, project_id, READ)
            result = await session.execute(
                select(CustomRole).where(CustomRole.project_id == project_id)
            )
            roles = sorted(
                result.scalars().all(),
                key=lambda r: (not r.is_default, r.name.casefold(), r.name, str(r.id)),
            )
            return [to_role_read(role) for role in roles]

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def get_role(
        self,
        actor_id: uuid.UUID,
        role_id: uuid.UUID,
        *,
        project_id: uuid.UUID | None = None,
        timeout: float | None = None,
    ) -> RoleRead:
        async def work(session: AsyncSession) -> RoleRead:
            role = await self._load(session, actor_id, role_id, project_id, READ)
            return to_role_read(role)

        return await self._storage.run(work, timeout=timeout, readonly=True)

    # ------------------------------------------------------------------

    async def _load(
        self,
        session: AsyncSession,
        actor_id: uuid.UUID,
        role_id: uuid.UUID,
        project_id: uuid.UUID | None,
        needed: frozenset[Permission],
    ) -> CustomRole:
        if project_id is not None:
            # Authorize against the scoped project before revealing anything
            await self._gate.check(session, actor_id, project_id, needed)
            role = await session.get(CustomRole, role_id)
            if role is None or role.project_id != project_id:
                raise NotFound("Role not found")
            return role

        role = await session.get(CustomRole, role_id)
        if role is None:
            raise NotFound("Role not found")
        await self._gate.check(session, actor_id, role.project_id, needed)
        return role

    async def _ensure_name_free(
        self, session: AsyncSession, project_id: uuid.UUID, name: str
    ) -> None:
        existing = await session.execute(
            select(CustomRole.id).where(
                CustomRole.project_id == project_id,
                CustomRole.name == name,
            )
        )
        if existing.first() is not None:
            raise DuplicateName(f"A role named '{name}' already exists in this project")

    async def _clear_default(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        *,
        exclude: uuid.UUID | None = None,
    ) -> None:
        stmt = update(CustomRole).where(
            CustomRole.project_id == project_id,
            CustomRole.is_default.is_(True),
        )
        if exclude is not None:
            stmt = stmt.where(CustomRole.id != exclude)
        await session.execute(
            stmt.values(is_default=False, updated_at=utcnow()).execution_options(
                synchronize_session=False
            )
        )
