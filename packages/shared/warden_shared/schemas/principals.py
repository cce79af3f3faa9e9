"""Principal identity as handed over by the authentication provider."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel

from .permissions import CATALOG_VERSION, Permission


class Principal(BaseModel):
    user_id: uuid.UUID
    email: Optional[str] = None

    model_config = {"frozen": True}


class EffectivePermissions(BaseModel):
    user_id: uuid.UUID
    project_id: uuid.UUID
    permissions: list[Permission]


class CatalogResponse(BaseModel):
    version: str = CATALOG_VERSION
    permissions: list[Permission]
