"""Project model."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import PortableJSON, TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "slug", name="uq_projects_org_slug"),
    )

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="RESTRICT", nullable=False, index=True
    )
    name: str = Field(nullable=False)
    slug: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(default="active", nullable=False)  # active | paused | archived
    connection_config: Optional[dict] = Field(default=None, sa_type=PortableJSON)
