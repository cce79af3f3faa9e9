from typing import Optional
from uuid import UUID
from datetime import datetime

from pydantic import BaseModel


class ProjectMemberAdd(BaseModel):
    user_id: UUID
    custom_role_id: Optional[UUID] = None


class ProjectMemberRoleUpdate(BaseModel):
    # None clears the role; the member keeps project membership without a grant
    custom_role_id: Optional[UUID] = None


class ProjectMemberRead(BaseModel):
    id: UUID
    project_id: UUID
    user_id: UUID
    custom_role_id: Optional[UUID] = None
    role_name: Optional[str] = None
    created_at: Optional[datetime] = None


class ProjectMemberListResponse(BaseModel):
    data: list[ProjectMemberRead]
