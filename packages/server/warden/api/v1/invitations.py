"""
Invitation endpoints.

GET    /api/v1/projects/{project_id}/invitations          - List (team.read)
POST   /api/v1/projects/{project_id}/invitations          - Invite (team.manage)
DELETE /api/v1/projects/{project_id}/invitations/{id}     - Revoke a pending invitation
POST   /api/v1/invitations/accept                          - Redeem a token as the caller
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from warden.api.deps import get_services
from warden.core.auth import get_current_principal
from warden.services import Services
from warden_shared.schemas.common import InvitationStatus
from warden_shared.schemas.invitations import (
    InvitationAccept,
    InvitationCreate,
    InvitationIssued,
    InvitationListResponse,
    InvitationRead,
)
from warden_shared.schemas.members import ProjectMemberRead
from warden_shared.schemas.principals import Principal

router = APIRouter()


@router.get("/projects/{project_id}/invitations", response_model=InvitationListResponse)
async def list_invitations(
    project_id: uuid.UUID,
    status_filter: Optional[InvitationStatus] = Query(default=None, alias="status"),
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    invitations = await services.invitations.list_invitations(
        principal.user_id, project_id, status=status_filter
    )
    return InvitationListResponse(data=invitations)


@router.post(
    "/projects/{project_id}/invitations",
    response_model=InvitationIssued,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    project_id: uuid.UUID,
    body: InvitationCreate,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """Invite an e-mail address. The token is only ever returned here."""
    ttl = timedelta(hours=body.ttl_hours) if body.ttl_hours is not None else None
    return await services.invitations.invite(
        principal.user_id, project_id, body.email, body.custom_role_id, ttl=ttl
    )


@router.delete(
    "/projects/{project_id}/invitations/{invitation_id}",
    response_model=InvitationRead,
)
async def revoke_invitation(
    project_id: uuid.UUID,
    invitation_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.invitations.revoke(
        principal.user_id, invitation_id, project_id=project_id
    )


@router.post("/invitations/accept", response_model=ProjectMemberRead)
async def accept_invitation(
    body: InvitationAccept,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.invitations.accept(body.token, principal)
