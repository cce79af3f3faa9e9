"""Invitation schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from .common import InvitationStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class InvitationCreate(BaseModel):
    email: EmailStr
    custom_role_id: Optional[UUID] = None
    ttl_hours: Optional[float] = Field(
        default=None,
        ge=0,
        le=24 * 90,
        description="Hours until the invitation expires (server default when omitted)",
    )


class InvitationAccept(BaseModel):
    token: str = Field(min_length=1, max_length=256)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class InvitationRead(BaseModel):
    id: UUID
    project_id: UUID
    email: str
    custom_role_id: Optional[UUID] = None
    invited_by: UUID
    expires_at: datetime
    status: InvitationStatus
    accepted_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class InvitationIssued(BaseModel):
    """Returned once on creation. The plaintext token is never stored."""
    invitation: InvitationRead
    token: str


class InvitationListResponse(BaseModel):
    data: list[InvitationRead]
