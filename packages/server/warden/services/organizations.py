"""
Organization service: create, list, fetch and delete organizations.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from warden.core.database import Storage
from warden.core.errors import DuplicateName, OrganizationNotEmpty
from warden.models.organization import Organization
from warden.models.organization_member import OrganizationMember
from warden.models.project import Project
from warden.services.gate import AccessGate
from warden_shared.schemas.common import OrgRole
from warden_shared.schemas.organizations import OrgCreateRequest, OrgListItem, OrgRead

log = structlog.get_logger()


def to_org_read(org: Organization) -> OrgRead:
    return OrgRead.model_validate(org)


class OrganizationService:
    def __init__(self, storage: Storage, gate: AccessGate):
        self._storage = storage
        self._gate = gate

    async def create_organization(
        self,
        actor_id: uuid.UUID,
        req: OrgCreateRequest,
        *,
        timeout: float | None = None,
    ) -> OrgRead:
        """Create an org; the creator becomes its fixed owner."""

        async def work(session: AsyncSession) -> OrgRead:
            existing = await session.execute(
                select(Organization.id).where(Organization.slug == req.slug)
            )
            if existing.first() is not None:
                raise DuplicateName("Org slug already taken")

            org = Organization(name=req.name, slug=req.slug, owner_id=actor_id)
            session.add(org)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise DuplicateName("Org slug already taken") from exc

            # Creator becomes owner
            session.add(
                OrganizationMember(
                    organization_id=org.id, user_id=actor_id, role=OrgRole.OWNER.value
                )
            )
            await session.flush()
            return to_org_read(org)

        org = await self._storage.run(work, timeout=timeout)
        log.info("org.created", org_id=str(org.id), slug=org.slug, creator=str(actor_id))
        return org

    async def list_organizations(
        self, actor_id: uuid.UUID, *, timeout: float | None = None
    ) -> list[OrgListItem]:
        """Orgs the user owns or belongs to, with the user's role."""

        async def work(session: AsyncSession) -> list[OrgListItem]:
            result = await session.execute(
                select(Organization, OrganizationMember.role)
                .outerjoin(
                    OrganizationMember,
                    (OrganizationMember.organization_id == Organization.id)
                    & (OrganizationMember.user_id == actor_id),
                )
                .where(
                    or_(
                        Organization.owner_id == actor_id,
                        OrganizationMember.user_id == actor_id,
                    )
                )
                .order_by(Organization.name, Organization.id)
            )
            return [
                OrgListItem(
                    id=org.id,
                    name=org.name,
                    slug=org.slug,
                    owner_id=org.owner_id,
                    role=OrgRole.OWNER if org.owner_id == actor_id else OrgRole(role),
                )
                for org, role in result.all()
            ]

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def get_organization(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> OrgRead:
        async def work(session: AsyncSession) -> OrgRead:
            await self._gate.check_organization_role(session, actor_id, organization_id, OrgRole)
            org = await session.get(Organization, organization_id)
            return to_org_read(org)

        return await self._storage.run(work, timeout=timeout, readonly=True)

    async def delete_organization(
        self,
        actor_id: uuid.UUID,
        organization_id: uuid.UUID,
        *,
        timeout: float | None = None,
    ) -> None:
        """Delete an org. Owners only; refused while it still has projects."""

        async def work(session: AsyncSession) -> None:
            await self._gate.check_organization_role(
                session, actor_id, organization_id, {OrgRole.OWNER}
            )
            projects = await session.scalar(
                select(func.count()).select_from(Project).where(
                    Project.organization_id == organization_id
                )
            )
            if projects:
                raise OrganizationNotEmpty(f"Organization still has {projects} project(s)")

            await session.execute(
                delete(OrganizationMember).where(
                    OrganizationMember.organization_id == organization_id
                )
            )
            await session.execute(delete(Organization).where(Organization.id == organization_id))

        await self._storage.run(work, timeout=timeout)
        log.info("org.deleted", org_id=str(organization_id), actor=str(actor_id))
