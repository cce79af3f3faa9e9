from typing import Any, Dict, Optional
from uuid import UUID
from datetime import datetime

from pydantic import BaseModel, Field

from .common import ProjectStatus
from .organizations import SLUG_PATTERN


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=2, max_length=50, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    # Opaque connection settings for the project's backing services
    connection_config: Optional[Dict[str, Any]] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    connection_config: Optional[Dict[str, Any]] = None


class ProjectRead(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    slug: str
    description: Optional[str] = None
    status: ProjectStatus
    has_connection_config: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectListResponse(BaseModel):
    data: list[ProjectRead]
