#!/usr/bin/env python3
"""Seed a development database with an organization, a project, roles and members.

Usage:
    python scripts/seed_dev_data.py

Reads WARDEN_DATABASE_URL (or defaults to localhost). Creates the schema if it
does not exist. Prints a pending invitation token to try the accept flow.
"""

import asyncio
import uuid

import structlog

from warden.core.cache import NullPermissionCache
from warden.core.config import get_settings
from warden.core.database import Storage, build_engine, init_db
from warden.core.errors import DuplicateName
from warden.core.logging import configure_logging
from warden.services import build_services
from warden_shared.schemas.common import OrgRole
from warden_shared.schemas.organizations import OrgCreateRequest
from warden_shared.schemas.permissions import Permission
from warden_shared.schemas.projects import ProjectCreate

log = structlog.get_logger()

# Deterministic user ids for reproducibility (the identity service owns users)
OWNER_ID = uuid.UUID("00000000-0000-0000-0000-000000000010")
ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000011")
DEVELOPER_ID = uuid.UUID("00000000-0000-0000-0000-000000000012")
VIEWER_ID = uuid.UUID("00000000-0000-0000-0000-000000000013")

ROLES = {
    "Viewer": {Permission.DATABASE_READ, Permission.STORAGE_READ, Permission.LOGS_READ, Permission.TEAM_READ},
    "Developer": {
        Permission.DATABASE_READ,
        Permission.DATABASE_WRITE,
        Permission.STORAGE_READ,
        Permission.STORAGE_WRITE,
        Permission.FUNCTIONS_READ,
        Permission.FUNCTIONS_DEPLOY,
        Permission.LOGS_READ,
        Permission.TEAM_READ,
    },
}


async def seed():
    settings = get_settings()
    configure_logging(settings.log_level, "text")
    storage = Storage(build_engine(settings.database_url))
    await init_db(storage)
    services = build_services(storage, NullPermissionCache(), settings)

    try:
        org = await services.organizations.create_organization(
            OWNER_ID, OrgCreateRequest(name="Acme Robotics", slug="acme-robotics")
        )
    except DuplicateName:
        log.info("seed.already_seeded")
        await services.close()
        return

    await services.memberships.set_organization_member(OWNER_ID, org.id, ADMIN_ID, OrgRole.ADMIN)
    project = await services.projects.create_project(
        OWNER_ID, org.id, ProjectCreate(name="Web App", slug="web-app", description="Customer site")
    )

    roles = {}
    for name, permissions in ROLES.items():
        roles[name] = await services.roles.create_role(
            OWNER_ID, project.id, name, permissions, is_default=(name == "Viewer")
        )

    await services.memberships.add_project_member(
        OWNER_ID, project.id, DEVELOPER_ID, roles["Developer"].id
    )
    await services.memberships.add_project_member(OWNER_ID, project.id, VIEWER_ID, roles["Viewer"].id)

    issued = await services.invitations.invite(
        OWNER_ID, project.id, "newcomer@acme.dev", roles["Viewer"].id
    )

    log.info("seed.done", org_id=str(org.id), project_id=str(project.id))
    print(f"Invitation token for newcomer@acme.dev: {issued.token}")
    await services.close()


if __name__ == "__main__":
    asyncio.run(seed())
