"""
Permission endpoints.

GET /api/v1/permissions                              - The permission catalog
GET /api/v1/projects/{project_id}/permissions/me      - Caller's effective permissions
GET /api/v1/projects/{project_id}/permissions/{user}  - Another user's (needs team.read)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from warden.api.deps import get_services
from warden.core.auth import get_current_principal
from warden.services import Services
from warden_shared.schemas.permissions import (
    CATALOG_VERSION,
    Permission,
    all_permissions,
    sorted_permissions,
)
from warden_shared.schemas.principals import CatalogResponse, EffectivePermissions, Principal

router = APIRouter()


@router.get("/permissions", response_model=CatalogResponse)
async def get_catalog(principal: Principal = Depends(get_current_principal)):
    return CatalogResponse(version=CATALOG_VERSION, permissions=sorted_permissions(all_permissions()))


@router.get("/projects/{project_id}/permissions/me", response_model=EffectivePermissions)
async def my_permissions(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    granted = await services.resolver.resolve(principal.user_id, project_id)
    return EffectivePermissions(
        user_id=principal.user_id,
        project_id=project_id,
        permissions=sorted_permissions(granted),
    )


@router.get("/projects/{project_id}/permissions/{user_id}", response_model=EffectivePermissions)
async def user_permissions(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.gate.require_all(principal.user_id, project_id, {Permission.TEAM_READ})
    granted = await services.resolver.resolve(user_id, project_id)
    return EffectivePermissions(
        user_id=user_id,
        project_id=project_id,
        permissions=sorted_permissions(granted),
    )
