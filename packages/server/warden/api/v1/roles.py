"""
Custom role endpoints (project-scoped).

GET    /api/v1/projects/{project_id}/roles            - List roles (team.read)
POST   /api/v1/projects/{project_id}/roles            - Create a role (team.manage)
GET    /api/v1/projects/{project_id}/roles/{role_id}  - Get a role
PATCH  /api/v1/projects/{project_id}/roles/{role_id}  - Update a role
DELETE /api/v1/projects/{project_id}/roles/{role_id}  - Delete an unused role
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status

from warden.api.deps import get_services
from warden.core.auth import get_current_principal
from warden.services import Services
from warden_shared.schemas.principals import Principal
from warden_shared.schemas.roles import RoleCreate, RoleListResponse, RoleRead, RoleUpdate

router = APIRouter()


@router.get("", response_model=RoleListResponse)
async def list_roles(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    roles = await services.roles.list_roles(principal.user_id, project_id)
    return RoleListResponse(data=roles)


@router.post("", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
async def create_role(
    project_id: uuid.UUID,
    body: RoleCreate,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.roles.create_role(
        principal.user_id,
        project_id,
        body.name,
        body.permissions,
        description=body.description,
        is_default=body.is_default,
    )


@router.get("/{role_id}", response_model=RoleRead)
async def get_role(
    project_id: uuid.UUID,
    role_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.roles.get_role(principal.user_id, role_id, project_id=project_id)


@router.patch("/{role_id}", response_model=RoleRead)
async def update_role(
    project_id: uuid.UUID,
    role_id: uuid.UUID,
    body: RoleUpdate,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.roles.update_role(
        principal.user_id, role_id, body, project_id=project_id
    )


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    project_id: uuid.UUID,
    role_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.roles.delete_role(principal.user_id, role_id, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
