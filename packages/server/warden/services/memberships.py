"""
Membership store: project memberships and organization memberships.

Project membership changes invalidate the project's cached resolutions.
Organization membership changes can raise or drop someone to/from full
access on every project of the organization, so they invalidate all of them.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from warden.core.cache import PermissionCache
from warden.core.database import Storage
from warden.core.errors import (
    AccessDenied,
    AlreadyMember,
    LastOwner,
    NotFound,
    RoleNotInProject,
    StorageConflict,
)
from warden.models.base import utcnow
from warden.models.custom_role import CustomRole
from warden.models.organization import Organization
from warden.models.organization_member import OrganizationMember
from warden.models.project import Project
from warden.models.project_member import MEMBER_UNIQUE_CONSTRAINT, ProjectMember
from warden.services.gate import AccessGate
from warden_shared.schemas.common import ORG_MANAGER_ROLES, OrgRole
from warden_shared.schemas.members import ProjectMemberRead
from warden_shared.schemas.organizations import OrgMemberRead
from warden_shared.schemas.permissions import Permission

log = structlog.get_logger()

MANAGE = frozenset({Permission.TEAM_MANAGE})
READ = frozenset({Permission.TEAM_READ})


def is_unique_violation(exc: IntegrityError, constraint: str) -> bool:
    """Tell a uniqueness violation from a foreign-key one.

    PostgreSQL names the constraint; SQLite only says UNIQUE.
    """
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return constraint in message or "unique" in message.lower()


async def insert_project_member(
    session: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    custom_role_id: uuid.UUID | None,
) -> ProjectMember:
    """Insert a membership row, relying on the (project, user) constraint.

    There is no check-then-insert: of two concurrent adds, the one that loses
    the constraint race gets AlreadyMember.
    """
    member = ProjectMember(project_id=project_id, user_id=user_id, custom_role_id=custom_role_id)
    session.add(member)
    try:
        await session.flush()
    except IntegrityError as exc:
        if is_unique_violation(exc, MEMBER_UNIQUE_CONSTRAINT):
            raise AlreadyMember() from exc
        raise NotFound("Project or role no longer exists") from exc
    return member


async def resolve_project_role(
    session: AsyncSession, project_id: uuid.UUID, custom_role_id: uuid.UUID | None
) -> Optional[CustomRole]:
    if custom_role_id is None:
        return None
    role = await session.get(CustomRole, custom_role_id)
    if role is None:
        raise NotFound("Role not found")
    if role.project_id != project_id:
        raise RoleNotInProject()
    return role


def to_member_read(member: ProjectMember, role_name: str | None = None) -> ProjectMemberRead:
    return ProjectMemberRead(
        id=member.id,
        project_id=member.project_id,
        user_id=member.user_id,
        custom_role_id=member.custom_role_id,
        role_name=role_name,
        created_at=member.created_at,
    )


def to_org_member_read(member: OrganizationMember) -> OrgMemberRead:
    return OrgMemberRead(
        id=member.id,
        organization_id=member.organization_id,
        user_id=member.user_id,
        role=OrgRole(member.role),
        created_at=member.created_at,
    )


class MembershipStore:
    def __init__(self, storage: Storage, gate: AccessGate, cache: PermissionCache):
        self._storage = storage
        self._gate = gate
        self._cache = cache

    # ------------------------------------------------------------------
    # Project memberships
    # ------------------------------------------------------------------

    async def add_project_member(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        user_id: uuid.UUID,
        custom_role_id: uuid.UUID | None = None,
        *,
        timeout: float | None = None,
    ) -> ProjectMemberRead:
        async def work(session: AsyncSession) -> ProjectMemberRead:
            await self._gate.check(session, actor_id, project_id, MANAGE)
            role = await resolve_project_role(session, project_id, custom_role_id)
            member = await insert_project_member(session, project_id, user_id, custom_role_id)
            return to_member_read(member, role.name if role else None)

        member = await self._storage.run(work, timeout=timeout)
        await self._cache.invalidate(project_id)
        log.info(
            "member.added",
            project_id=str(project_id),
            user_id=str(user_id),
            role_id=str(custom_role_id) if custom_role_id else None,
            actor=str(actor_id),
        )
        return member

    async def remove_project_member(
        self,
        actor_id: uuid.UUID,
        member_id: uuid.UUID,
        *,
        project_id: uuid.UUID | None = None,
        timeout: float | None = None,
    ) -> None:
        async def work(session: AsyncSession) -> ProjectMember:
            member = await self._load_member(session, actor_id, member_id, project_id, MANAGE)
            await session.delete(member)
            await session.flush()
            return member

        member = await self._storage.run(work, timeout=timeout)
        await self._cache.invalidate(member.project_id)
        log.info(
            "member.removed",
            project_id=str(member.project_id),
            user_id=str(member.user_id),
            actor=str(actor_id),
        )

    async def set_member_role(
        self,
        actor_id: uuid.UUID,
        member_id: uuid.UUID,
        custom_role_id: uuid.UUID | None,
        *,
        project_id: uuid.UUID | None = None,
        timeout: float | None = None,
    ) -> ProjectMemberRead:
        """Assign a role of the member's project, or clear it with None."""

        async def work(session: AsyncSession) -> ProjectMemberRead:
            member = await self._load_member(session, actor_id, member_id, project_id, MANAGE)
            role = await resolve_project_role(session, member.project_id, custom_role_id)
            member.custom_role_id = custom_role_id
            member.updated_at = utcnow()
            session.add(member)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise NotFound("Role no longer exists") from exc
            return to_member_read(member, role.name if role else None)

        member = await self._storage.run(work, timeout=timeout)
        await self._cache.invalidate(member.project_id)
        log.info(
            "member.role_changed",
            project_id=str(member.project_id),
            user_id=str(member.user_id),
            role_id=str(custom_role_id) if custom_role_id else None,
            actor=str(actor_id),
        )
        return member

    async def list_project_members(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> list[ProjectMemberRead]:
        async def work(session: AsyncSession) -> list[ProjectMemberRead]:
            await self._gate.check(session, actor_id, project_id, READ)
            result = await session.execute(
                select(ProjectMember, CustomRole.name)
                .outerjoin(CustomRole, CustomRole.id == ProjectMember.custom_role_id)
                .where(ProjectMember.project_id == project_id)
                .order_by(ProjectMember.created_at, ProjectMember.id)
            )
            return [to_member_read(member, role_name) for member, role_name in result.all()]

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def _load_member(
        self,
        session: AsyncSession,
        actor_id: uuid.UUID,
        member_id: uuid.UUID,
        project_id: uuid.UUID | None,
        needed: frozenset[Permission],
    ) -> ProjectMember:
        if project_id is not None:
            await self._gate.check(session, actor_id, project_id, needed)
            member = await session.get(ProjectMember, member_id)
            if member is None or member.project_id != project_id:
                raise NotFound("Member not found")
            return member

        member = await session.get(ProjectMember, member_id)
        if member is None:
            raise NotFound("Member not found")
        await self._gate.check(session, actor_id, member.project_id, needed)
        return member

    # ------------------------------------------------------------------
    # Organization memberships
    # ------------------------------------------------------------------

    async def set_organization_member(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        role: OrgRole,
        *,
        timeout: float | None = None,
    ) -> OrgMemberRead:
        """Add a user to the organization or change their role.

        Only owners may grant or take away the owner role. The organization's
        fixed owner keeps the owner role: demoting them raises LastOwner.
        """
        role = OrgRole(role)

        async def work(session: AsyncSession) -> tuple[OrgMemberRead, list[uuid.UUID]]:
            actor_role = await self._gate.check_organization_role(
                session, actor_id, organization_id, ORG_MANAGER_ROLES
            )
            org = await self._lock_organization(session, organization_id)

            result = await session.execute(
                select(OrganizationMember).where(
                    OrganizationMember.organization_id == organization_id,
                    OrganizationMember.user_id == user_id,
                )
            )
            member = result.scalar_one_or_none()
            touches_owner = role == OrgRole.OWNER or (
                member is not None and member.role == OrgRole.OWNER.value
            )
            if touches_owner and actor_role != OrgRole.OWNER:
                log.info(
                    "access.denied",
                    user_id=str(actor_id),
                    organization_id=str(organization_id),
                    reason="owner_change",
                )
                raise AccessDenied()
            if user_id == org.owner_id and role != OrgRole.OWNER:
                raise LastOwner("The organization owner cannot be demoted")

            if member is None:
                member = OrganizationMember(
                    organization_id=organization_id, user_id=user_id, role=role.value
                )
            else:
                member.role = role.value
                member.updated_at = utcnow()
            session.add(member)
            try:
                await session.flush()
            except IntegrityError as exc:
                # Concurrent insert of the same (org, user); retry sees the row
                raise StorageConflict() from exc

            return to_org_member_read(member), await self._project_ids(session, organization_id)

        member, project_ids = await self._storage.run(
            work, timeout=timeout, retry_on_conflict=True
        )
        await self._invalidate_projects(project_ids)
        log.info(
            "org_member.set",
            organization_id=str(organization_id),
            user_id=str(user_id),
            role=role.value,
            actor=str(actor_id),
        )
        return member

    async def remove_organization_member(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> None:
        async def work(session: AsyncSession) -> list[uuid.UUID]:
            actor_role = await self._gate.check_organization_role(
                session, actor_id, organization_id, ORG_MANAGER_ROLES
            )
            org = await self._lock_organization(session, organization_id)

            result = await session.execute(
                select(OrganizationMember).where(
                    OrganizationMember.organization_id == organization_id,
                    OrganizationMember.user_id == user_id,
                )
            )
            member = result.scalar_one_or_none()
            if member is None:
                raise NotFound("Organization member not found")
            if member.role == OrgRole.OWNER.value and actor_role != OrgRole.OWNER:
                raise AccessDenied()
            if user_id == org.owner_id:
                raise LastOwner("The organization owner cannot be removed")

            await session.delete(member)
            await session.flush()
            return await self._project_ids(session, organization_id)

        project_ids = await self._storage.run(work, timeout=timeout)
        await self._invalidate_projects(project_ids)
        log.info(
            "org_member.removed",
            organization_id=str(organization_id),
            user_id=str(user_id),
            actor=str(actor_id),
        )

    async def list_organization_members(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> list[OrgMemberRead]:
        async def work(session: AsyncSession) -> list[OrgMemberRead]:
            await self._gate.check_organization_role(session, actor_id, organization_id, OrgRole)
            result = await session.execute(
                select(OrganizationMember)
                .where(OrganizationMember.organization_id == organization_id)
                .order_by(OrganizationMember.created_at, OrganizationMember.id)
            )
            return [to_org_member_read(m) for m in result.scalars().all()]

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def _lock_organization(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> Organization:
        # Serializes owner changes for this organization
        result = await session.execute(
            select(Organization).where(Organization.id == organization_id).with_for_update()
        )
        return result.scalar_one()

    async def _project_ids(self, session: AsyncSession, organization_id: uuid.UUID) -> list[uuid.UUID]:
        result = await session.execute(
            select(Project.id).where(Project.organization_id == organization_id)
        )
        return list(result.scalars().all())

    async def _invalidate_projects(self, project_ids: list[uuid.UUID]) -> None:
        for project_id in project_ids:
            await self._cache.invalidate(project_id)
