"""
Project membership endpoints.

GET    /api/v1/projects/{project_id}/members              - List members (team.read)
POST   /api/v1/projects/{project_id}/members              - Add a member (team.manage)
PATCH  /api/v1/projects/{project_id}/members/{member_id}  - Change or clear the role
DELETE /api/v1/projects/{project_id}/members/{member_id}  - Remove a member
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status

from warden.api.deps import get_services
from warden.core.auth import get_current_principal
from warden.services import Services
from warden_shared.schemas.members import (
    ProjectMemberAdd,
    ProjectMemberListResponse,
    ProjectMemberRead,
    ProjectMemberRoleUpdate,
)
from warden_shared.schemas.principals import Principal

router = APIRouter()


@router.get("", response_model=ProjectMemberListResponse)
async def list_members(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    members = await services.memberships.list_project_members(principal.user_id, project_id)
    return ProjectMemberListResponse(data=members)


@router.post("", response_model=ProjectMemberRead, status_code=status.HTTP_201_CREATED)
async def add_member(
    project_id: uuid.UUID,
    body: ProjectMemberAdd,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.memberships.add_project_member(
        principal.user_id, project_id, body.user_id, body.custom_role_id
    )


@router.patch("/{member_id}", response_model=ProjectMemberRead)
async def set_member_role(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    body: ProjectMemberRoleUpdate,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.memberships.set_member_role(
        principal.user_id, member_id, body.custom_role_id, project_id=project_id
    )


@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.memberships.remove_project_member(
        principal.user_id, member_id, project_id=project_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
