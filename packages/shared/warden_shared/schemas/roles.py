"""Custom role schemas (project-scoped permission bundles)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .permissions import Permission


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    # Raw values; the role store rejects anything outside the catalog
    permissions: set[str] = Field(default_factory=set)
    is_default: bool = False


class RoleUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: Optional[set[str]] = None
    is_default: Optional[bool] = None


class RoleRead(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    description: Optional[str] = None
    permissions: frozenset[Permission]
    is_default: bool
    created_at: Optional[datetime] = None


class RoleListResponse(BaseModel):
    data: list[RoleRead]
