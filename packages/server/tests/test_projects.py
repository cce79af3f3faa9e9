"""
Organization and project service tests.
"""

from __future__ import annotations

import uuid

import pytest

from conftest import World
from warden.core.errors import AccessDenied, DuplicateName, NotFound, OrganizationNotEmpty
from warden.services import Services
from warden_shared.schemas.common import OrgRole, ProjectStatus
from warden_shared.schemas.organizations import OrgCreateRequest
from warden_shared.schemas.projects import ProjectCreate, ProjectUpdate


class TestOrganizations:
    @pytest.mark.asyncio
    async def test_creator_is_owner(self, services: Services, world: World):
        orgs = await services.organizations.list_organizations(world.owner_id)
        assert [(o.slug, o.role) for o in orgs] == [("acme", OrgRole.OWNER)]

        members = await services.memberships.list_organization_members(world.owner_id, world.org_id)
        assert [(m.user_id, m.role) for m in members] == [(world.owner_id, OrgRole.OWNER)]

    @pytest.mark.asyncio
    async def test_slug_is_unique(self, services: Services, world: World):
        with pytest.raises(DuplicateName):
            await services.organizations.create_organization(
                uuid.uuid4(), OrgCreateRequest(name="Other", slug="acme")
            )

    @pytest.mark.asyncio
    async def test_get_requires_membership(self, services: Services, world: World):
        org = await services.organizations.get_organization(world.owner_id, world.org_id)
        assert org.owner_id == world.owner_id
        with pytest.raises(AccessDenied):
            await services.organizations.get_organization(uuid.uuid4(), world.org_id)

    @pytest.mark.asyncio
    async def test_delete_blocked_while_projects_exist(self, services: Services, world: World):
        with pytest.raises(OrganizationNotEmpty):
            await services.organizations.delete_organization(world.owner_id, world.org_id)

        await services.projects.delete_project(world.owner_id, world.project_id)
        await services.organizations.delete_organization(world.owner_id, world.org_id)
        assert await services.organizations.list_organizations(world.owner_id) == []

    @pytest.mark.asyncio
    async def test_admin_cannot_delete(self, services: Services, world: World):
        admin = uuid.uuid4()
        await services.memberships.set_organization_member(
            world.owner_id, world.org_id, admin, OrgRole.ADMIN
        )
        with pytest.raises(AccessDenied):
            await services.organizations.delete_organization(admin, world.org_id)


class TestProjects:
    @pytest.mark.asyncio
    async def test_slug_unique_per_org(self, services: Services, world: World):
        with pytest.raises(DuplicateName):
            await services.projects.create_project(
                world.owner_id, world.org_id, ProjectCreate(name="Web 2", slug="web")
            )

    @pytest.mark.asyncio
    async def test_plain_member_cannot_create(self, services: Services, world: World):
        user = uuid.uuid4()
        await services.memberships.set_organization_member(
            world.owner_id, world.org_id, user, OrgRole.MEMBER
        )
        with pytest.raises(AccessDenied):
            await services.projects.create_project(
                user, world.org_id, ProjectCreate(name="Side", slug="side")
            )

    @pytest.mark.asyncio
    async def test_listing_visibility(self, services: Services, world: World):
        hidden = await services.projects.create_project(
            world.owner_id, world.org_id, ProjectCreate(name="Internal", slug="internal")
        )
        user = uuid.uuid4()
        await services.memberships.add_project_member(world.owner_id, world.project_id, user)

        owner_view = await services.projects.list_projects(world.owner_id, world.org_id)
        assert {p.id for p in owner_view} == {world.project_id, hidden.id}

        member_view = await services.projects.list_projects(user, world.org_id)
        assert [p.id for p in member_view] == [world.project_id]

        assert await services.projects.list_projects(uuid.uuid4(), world.org_id) == []

    @pytest.mark.asyncio
    async def test_get_requires_access(self, services: Services, world: World):
        project = await services.projects.get_project(world.owner_id, world.project_id)
        assert project.slug == "web"
        with pytest.raises(AccessDenied):
            await services.projects.get_project(uuid.uuid4(), world.project_id)

    @pytest.mark.asyncio
    async def test_update_project(self, services: Services, world: World):
        updated = await services.projects.update_project(
            world.owner_id,
            world.project_id,
            ProjectUpdate(status=ProjectStatus.ARCHIVED, connection_config={"host": "db"}),
        )
        assert updated.status == ProjectStatus.ARCHIVED
        assert updated.has_connection_config

    @pytest.mark.asyncio
    async def test_delete_cascades(self, services: Services, world: World):
        role = await services.roles.create_role(world.owner_id, world.project_id, "Viewer", [])
        user = uuid.uuid4()
        await services.memberships.add_project_member(world.owner_id, world.project_id, user, role.id)
        await services.invitations.invite(world.owner_id, world.project_id, "a@example.com", role.id)

        await services.projects.delete_project(world.owner_id, world.project_id)

        with pytest.raises(NotFound):
            await services.resolver.resolve(user, world.project_id)
        with pytest.raises(NotFound):
            await services.projects.delete_project(world.owner_id, world.project_id)
