"""
Permission resolver and access gate tests.

Tests cover:
- Resolution precedence (org owner, org admin, non-member, role-less member, role)
- Cache coherence after role and membership changes
- Fail-closed gate behaviour
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import update

from conftest import World, add_member_with
from warden.core.errors import (
    AccessDenied,
    InvalidPermission,
    NotFound,
    StorageConflict,
    StorageTimeout,
)
from warden.models.custom_role import CustomRole
from warden.models.organization_member import OrganizationMember
from warden.services import Services
from warden.services.gate import AccessGate
from warden.services.resolver import PermissionResolver
from warden_shared.schemas.common import OrgRole
from warden_shared.schemas.permissions import Permission, all_permissions
from warden_shared.schemas.roles import RoleUpdate

DEV = {Permission.DATABASE_READ, Permission.DATABASE_WRITE, Permission.FUNCTIONS_READ}


class TestPrecedence:
    @pytest.mark.asyncio
    async def test_org_owner_gets_full_catalog(self, services: Services, world: World):
        granted = await services.resolver.resolve(world.owner_id, world.project_id)
        assert granted == all_permissions()

    @pytest.mark.asyncio
    async def test_owner_keeps_full_catalog_with_restricted_project_role(
        self, services: Services, world: World
    ):
        viewer = await services.roles.create_role(
            world.owner_id, world.project_id, "Viewer", [Permission.LOGS_READ]
        )
        await services.memberships.add_project_member(
            world.owner_id, world.project_id, world.owner_id, viewer.id
        )
        assert await services.resolver.resolve(world.owner_id, world.project_id) == all_permissions()

        # Still full after the project membership goes away again
        members = await services.memberships.list_project_members(world.owner_id, world.project_id)
        await services.memberships.remove_project_member(world.owner_id, members[0].id)
        assert await services.resolver.resolve(world.owner_id, world.project_id) == all_permissions()

    @pytest.mark.asyncio
    async def test_org_admin_gets_full_catalog(self, services: Services, world: World):
        admin = uuid.uuid4()
        await services.memberships.set_organization_member(
            world.owner_id, world.org_id, admin, OrgRole.ADMIN
        )
        assert await services.resolver.resolve(admin, world.project_id) == all_permissions()

    @pytest.mark.asyncio
    async def test_plain_org_member_gets_nothing(self, services: Services, world: World):
        user = uuid.uuid4()
        await services.memberships.set_organization_member(
            world.owner_id, world.org_id, user, OrgRole.MEMBER
        )
        assert await services.resolver.resolve(user, world.project_id) == frozenset()

    @pytest.mark.asyncio
    async def test_stranger_gets_nothing(self, services: Services, world: World):
        assert await services.resolver.resolve(uuid.uuid4(), world.project_id) == frozenset()

    @pytest.mark.asyncio
    async def test_member_without_role_gets_nothing(self, services: Services, world: World):
        user = uuid.uuid4()
        await services.memberships.add_project_member(world.owner_id, world.project_id, user)
        assert await services.resolver.resolve(user, world.project_id) == frozenset()

    @pytest.mark.asyncio
    async def test_member_gets_exactly_role_permissions(self, services: Services, world: World):
        user = await add_member_with(services, world, DEV, role_name="Developer")
        assert await services.resolver.resolve(user, world.project_id) == frozenset(DEV)

    @pytest.mark.asyncio
    async def test_unknown_project(self, services: Services):
        with pytest.raises(NotFound):
            await services.resolver.resolve(uuid.uuid4(), uuid.uuid4())


class TestCacheCoherence:
    @pytest.mark.asyncio
    async def test_role_update_visible_immediately(self, services: Services, world: World):
        user = await add_member_with(services, world, DEV, role_name="Developer")
        assert await services.resolver.resolve(user, world.project_id) == frozenset(DEV)

        roles = await services.roles.list_roles(world.owner_id, world.project_id)
        await services.roles.update_role(
            world.owner_id, roles[0].id, RoleUpdate(permissions={"logs.read"})
        )

        assert await services.resolver.resolve(user, world.project_id) == {Permission.LOGS_READ}

    @pytest.mark.asyncio
    async def test_member_removal_visible_immediately(self, services: Services, world: World):
        user = await add_member_with(services, world, DEV)
        assert await services.resolver.resolve(user, world.project_id)

        members = await services.memberships.list_project_members(world.owner_id, world.project_id)
        member = next(m for m in members if m.user_id == user)
        await services.memberships.remove_project_member(world.owner_id, member.id)

        assert await services.resolver.resolve(user, world.project_id) == frozenset()

    @pytest.mark.asyncio
    async def test_org_promotion_visible_immediately(self, services: Services, world: World):
        user = uuid.uuid4()
        assert await services.resolver.resolve(user, world.project_id) == frozenset()

        await services.memberships.set_organization_member(
            world.owner_id, world.org_id, user, OrgRole.ADMIN
        )

        assert await services.resolver.resolve(user, world.project_id) == all_permissions()

    @pytest.mark.asyncio
    async def test_corrupt_stored_role_is_rejected(self, services: Services, world: World):
        user = await add_member_with(services, world, DEV, role_name="Developer")

        async def corrupt(session):
            await session.execute(
                update(CustomRole)
                .where(CustomRole.project_id == world.project_id)
                .values(permissions=["database.read", "root"])
            )

        await services.storage.run(corrupt)
        await services.cache.invalidate(world.project_id)

        with pytest.raises(InvalidPermission):
            await services.resolver.resolve(user, world.project_id)
        with pytest.raises(AccessDenied):
            await services.gate.require_all(user, world.project_id, {Permission.DATABASE_READ})


class TestGate:
    @pytest.mark.asyncio
    async def test_subset_allowed(self, services: Services, world: World):
        user = await add_member_with(services, world, DEV)
        await services.gate.require_all(user, world.project_id, {Permission.DATABASE_READ})
        assert await services.gate.allowed(user, world.project_id, set())

    @pytest.mark.asyncio
    async def test_missing_permission_denied(self, services: Services, world: World):
        user = await add_member_with(services, world, DEV)
        with pytest.raises(AccessDenied) as exc_info:
            await services.gate.require_all(
                user, world.project_id, {Permission.DATABASE_READ, Permission.BILLING_MANAGE}
            )
        # The message never names the missing permission
        assert "billing" not in exc_info.value.message
        assert not await services.gate.allowed(user, world.project_id, {Permission.BILLING_MANAGE})

    @pytest.mark.asyncio
    async def test_unknown_project_denied(self, services: Services):
        with pytest.raises(AccessDenied):
            await services.gate.require_all(uuid.uuid4(), uuid.uuid4(), {Permission.TEAM_READ})

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_closed(self, storage):
        resolver = AsyncMock(spec=PermissionResolver)
        resolver.resolve.side_effect = RuntimeError("bug")
        gate = AccessGate(resolver, storage)

        with pytest.raises(AccessDenied):
            await gate.require_all(uuid.uuid4(), uuid.uuid4(), set())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [StorageTimeout(), StorageConflict()])
    async def test_storage_errors_propagate(self, storage, error):
        resolver = AsyncMock(spec=PermissionResolver)
        resolver.resolve.side_effect = error
        gate = AccessGate(resolver, storage)

        with pytest.raises(type(error)):
            await gate.require_all(uuid.uuid4(), uuid.uuid4(), {Permission.TEAM_READ})

    @pytest.mark.asyncio
    async def test_organization_role(self, services: Services, world: World):
        assert (
            await services.gate.require_organization_role(
                world.owner_id, world.org_id, {OrgRole.OWNER}
            )
            == OrgRole.OWNER
        )
        with pytest.raises(AccessDenied):
            await services.gate.require_organization_role(uuid.uuid4(), world.org_id, OrgRole)

    @pytest.mark.asyncio
    async def test_corrupt_organization_role_denied(self, services: Services, world: World):
        user = uuid.uuid4()
        await services.memberships.set_organization_member(
            world.owner_id, world.org_id, user, OrgRole.ADMIN
        )

        async def corrupt(session):
            await session.execute(
                update(OrganizationMember)
                .where(OrganizationMember.user_id == user)
                .values(role="superuser")
            )

        await services.storage.run(corrupt)

        with pytest.raises(AccessDenied):
            await services.gate.require_organization_role(user, world.org_id, OrgRole)

    @pytest.mark.asyncio
    async def test_in_transaction_check_fails_closed(
        self, services: Services, world: World, monkeypatch
    ):
        async def broken(session, user_id, project_id):
            raise RuntimeError("bug")

        monkeypatch.setattr("warden.services.gate.compute_permissions", broken)

        async def work(session):
            await services.gate.check(session, world.owner_id, world.project_id, set())

        with pytest.raises(AccessDenied):
            await services.storage.run(work, readonly=True)


class TestResolverRetry:
    @pytest.mark.asyncio
    async def test_read_retried_once(self, services: Services, world: World):
        storage = services.storage
        real_run = storage.run
        calls = []

        async def flaky_run(work, **kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise StorageTimeout(indeterminate=False)
            return await real_run(work, **kwargs)

        resolver = PermissionResolver(storage)
        storage.run = flaky_run
        try:
            granted = await resolver.resolve(world.owner_id, world.project_id)
        finally:
            storage.run = real_run

        assert granted == all_permissions()
        assert len(calls) == 2
        assert all(call["readonly"] for call in calls)
