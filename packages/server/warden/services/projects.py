"""
Project service: project lifecycle inside an organization.

Creating and deleting projects is an organization-level action (owner or
admin). Editing a project's settings needs ``settings.manage`` on it.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from warden.core.cache import PermissionCache
from warden.core.database import Storage
from warden.core.errors import AccessDenied, DuplicateName, NotFound
from warden.models.base import utcnow
from warden.models.custom_role import CustomRole
from warden.models.invitation import Invitation
from warden.models.organization import Organization
from warden.models.organization_member import OrganizationMember
from warden.models.project import Project
from warden.models.project_member import ProjectMember
from warden.services.gate import AccessGate
from warden_shared.schemas.common import ORG_MANAGER_ROLES, OrgRole, ProjectStatus
from warden_shared.schemas.permissions import Permission
from warden_shared.schemas.projects import ProjectCreate, ProjectRead, ProjectUpdate

log = structlog.get_logger()

SETTINGS_MANAGE = frozenset({Permission.SETTINGS_MANAGE})


def to_project_read(project: Project) -> ProjectRead:
    return ProjectRead(
        id=project.id,
        organization_id=project.organization_id,
        name=project.name,
        slug=project.slug,
        description=project.description,
        status=ProjectStatus(project.status),
        has_connection_config=bool(project.connection_config),
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


class ProjectService:
    def __init__(self, storage: Storage, gate: AccessGate, cache: PermissionCache):
        self._storage = storage
        self._gate = gate
        self._cache = cache

    async def create_project(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        req: ProjectCreate,
        *,
        timeout: float | None = None,
    ) -> ProjectRead:
        async def work(session: AsyncSession) -> ProjectRead:
            await self._gate.check_organization_role(
                session, actor_id, organization_id, ORG_MANAGER_ROLES
            )
            existing = await session.execute(
                select(Project.id).where(
                    Project.organization_id == organization_id,
                    Project.slug == req.slug,
                )
            )
            if existing.first() is not None:
                raise DuplicateName("Project slug already taken in this organization")

            project = Project(
                organization_id=organization_id,
                name=req.name,
                slug=req.slug,
                description=req.description,
                status=ProjectStatus.ACTIVE.value,
                connection_config=req.connection_config,
            )
            session.add(project)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise DuplicateName("Project slug already taken in this organization") from exc
            return to_project_read(project)

        project = await self._storage.run(work, timeout=timeout)
        log.info(
            "project.created",
            project_id=str(project.id),
            org_id=str(organization_id),
            slug=project.slug,
            actor=str(actor_id),
        )
        return project

    async def list_projects(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> list[ProjectRead]:
        """Projects of an org visible to the user.

        Owners and admins see all of them, everyone else only the projects
        they are a member of.
        """

        async def work(session: AsyncSession) -> list[ProjectRead]:
            query = select(Project).where(Project.organization_id == organization_id)
            if not await self._is_org_manager(session, actor_id, organization_id):
                query = query.join(
                    ProjectMember,
                    (ProjectMember.project_id == Project.id)
                    & (ProjectMember.user_id == actor_id),
                )
            result = await session.execute(query.order_by(Project.name, Project.id))
            return [to_project_read(p) for p in result.scalars().all()]

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def get_project(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> ProjectRead:
        async def work(session: AsyncSession) -> ProjectRead:
            project = await session.get(Project, project_id)
            if project is None:
                raise AccessDenied()
            if not await self._is_org_manager(session, actor_id, project.organization_id):
                membership = await session.execute(
                    select(ProjectMember.id).where(
                        ProjectMember.project_id == project_id,
                        ProjectMember.user_id == actor_id,
                    )
                )
                if membership.first() is None:
                    log.info("access.denied", user_id=str(actor_id), project_id=str(project_id))
                    raise AccessDenied()
            return to_project_read(project)

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def update_project(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        patch: ProjectUpdate,
        *,
        timeout: float | None = None,
    ) -> ProjectRead:
        fields = patch.model_fields_set

        async def work(session: AsyncSession) -> ProjectRead:
            await self._gate.check(session, actor_id, project_id, SETTINGS_MANAGE)
            project = await session.get(Project, project_id)
            if "name" in fields and patch.name is not None:
                project.name = patch.name
            if "description" in fields:
                project.description = patch.description
            if "status" in fields and patch.status is not None:
                project.status = ProjectStatus(patch.status).value
            if "connection_config" in fields:
                project.connection_config = patch.connection_config
            project.updated_at = utcnow()
            session.add(project)
            await session.flush()
            return to_project_read(project)

        project = await self._storage.run(work, timeout=timeout)
        log.info(
            "project.updated",
            project_id=str(project_id),
            fields=sorted(fields),
            actor=str(actor_id),
        )
        return project

    async def delete_project(
        self,
        actor_id: uuid.UUID,
        project_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> None:
        """Delete a project with its invitations, memberships and roles."""

        async def work(session: AsyncSession) -> None:
            project = await session.get(Project, project_id)
            if project is None:
                raise NotFound("Project not found")
            await self._gate.check_organization_role(
                session, actor_id, project.organization_id, ORG_MANAGER_ROLES
            )
            # Children first: member -> role is RESTRICT
            await session.execute(delete(Invitation).where(Invitation.project_id == project_id))
            await session.execute(delete(ProjectMember).where(ProjectMember.project_id == project_id))
            await session.execute(delete(CustomRole).where(CustomRole.project_id == project_id))
            await session.execute(delete(Project).where(Project.id == project_id))

        await self._storage.run(work, timeout=timeout)
        await self._cache.invalidate(project_id)
        log.info("project.deleted", project_id=str(project_id), actor=str(actor_id))

    async def _is_org_manager(
        self, session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> bool:
        org = await session.get(Organization, organization_id)
        if org is None:
            return False
        if org.owner_id == user_id:
            return True
        result = await session.execute(
            select(OrganizationMember.role).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user_id,
            )
        )
        role = result.scalar_one_or_none()
        return role is not None and OrgRole(role) in ORG_MANAGER_ROLES
