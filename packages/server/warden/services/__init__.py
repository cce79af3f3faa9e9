"""
Service container.

Everything is wired from one ``Storage`` and one ``PermissionCache``; nothing
is module-global, so tests and the HTTP app build their own instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from warden.core.cache import PermissionCache
from warden.core.config import Settings
from warden.core.database import Storage
from warden.services.gate import AccessGate
from warden.services.invitations import InvitationEngine
from warden.services.memberships import MembershipStore
from warden.services.organizations import OrganizationService
from warden.services.projects import ProjectService
from warden.services.resolver import PermissionResolver
from warden.services.roles import RoleStore


@dataclass
class Services:
    storage: Storage
    cache: PermissionCache
    resolver: PermissionResolver
    gate: AccessGate
    organizations: OrganizationService
    projects: ProjectService
    roles: RoleStore
    memberships: MembershipStore
    invitations: InvitationEngine

    async def close(self) -> None:
        await self.cache.close()
        await self.storage.close()


def build_services(storage: Storage, cache: PermissionCache, settings: Settings) -> Services:
    resolver = PermissionResolver(storage, cache)
    gate = AccessGate(resolver, storage)
    return Services(
        storage=storage,
        cache=cache,
        resolver=resolver,
        gate=gate,
        organizations=OrganizationService(storage, gate),
        projects=ProjectService(storage, gate, cache),
        roles=RoleStore(storage, gate, cache),
        memberships=MembershipStore(storage, gate, cache),
        invitations=InvitationEngine(
            storage,
            gate,
            cache,
            default_ttl=timedelta(hours=settings.invitation_ttl_hours),
            hash_rounds=settings.token_hash_rounds,
            require_email_match=settings.invitation_require_email_match,
        ),
    )
