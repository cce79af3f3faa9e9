"""
Organization endpoints.

GET    /api/v1/orgs                             - List orgs for the caller
POST   /api/v1/orgs                             - Create an org (caller becomes owner)
GET    /api/v1/orgs/{org_id}                    - Get org details
DELETE /api/v1/orgs/{org_id}                    - Delete an empty org (owner only)
GET    /api/v1/orgs/{org_id}/members            - List org members
PUT    /api/v1/orgs/{org_id}/members/{user_id}  - Add a member or change their role
DELETE /api/v1/orgs/{org_id}/members/{user_id}  - Remove a member
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status

from warden.api.deps import get_services
from warden.core.auth import get_current_principal
from warden.services import Services
from warden_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgListResponse,
    OrgMemberListResponse,
    OrgMemberRead,
    OrgMemberSetRequest,
    OrgRead,
)
from warden_shared.schemas.principals import Principal

router = APIRouter()


@router.get("", response_model=OrgListResponse)
async def list_orgs(
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """List orgs the caller owns or belongs to."""
    items = await services.organizations.list_organizations(principal.user_id)
    return OrgListResponse(data=items)


@router.post("", response_model=OrgRead, status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrgCreateRequest,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.organizations.create_organization(principal.user_id, body)


@router.get("/{org_id}", response_model=OrgRead)
async def get_org(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.organizations.get_organization(principal.user_id, org_id)


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_org(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.organizations.delete_organization(principal.user_id, org_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{org_id}/members", response_model=OrgMemberListResponse)
async def list_org_members(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    members = await services.memberships.list_organization_members(principal.user_id, org_id)
    return OrgMemberListResponse(data=members)


@router.put("/{org_id}/members/{user_id}", response_model=OrgMemberRead)
async def set_org_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    body: OrgMemberSetRequest,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.memberships.set_organization_member(
        principal.user_id, org_id, user_id, body.role
    )


@router.delete("/{org_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_org_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.memberships.remove_organization_member(principal.user_id, org_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
