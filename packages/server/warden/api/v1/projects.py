"""
Project endpoints.

GET    /api/v1/orgs/{org_id}/projects  - List projects visible to the caller
POST   /api/v1/orgs/{org_id}/projects  - Create a project (org owner/admin)
GET    /api/v1/projects/{project_id}   - Get project details
PATCH  /api/v1/projects/{project_id}   - Update (needs settings.manage)
DELETE /api/v1/projects/{project_id}   - Delete with roles, members, invitations
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status

from warden.api.deps import get_services
from warden.core.auth import get_current_principal
from warden.services import Services
from warden_shared.schemas.principals import Principal
from warden_shared.schemas.projects import (
    ProjectCreate,
    ProjectListResponse,
    ProjectRead,
    ProjectUpdate,
)

router = APIRouter()


@router.get("/orgs/{org_id}/projects", response_model=ProjectListResponse)
async def list_projects(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    projects = await services.projects.list_projects(principal.user_id, org_id)
    return ProjectListResponse(data=projects)


@router.post(
    "/orgs/{org_id}/projects",
    response_model=ProjectRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_project(
    org_id: uuid.UUID,
    body: ProjectCreate,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.projects.create_project(principal.user_id, org_id, body)


@router.get("/projects/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.projects.get_project(principal.user_id, project_id)


@router.patch("/projects/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.projects.update_project(principal.user_id, project_id, body)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.projects.delete_project(principal.user_id, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
