"""Custom role: a named, project-scoped permission bundle."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import PortableJSON, TimestampMixin, UUIDMixin

DEFAULT_ROLE_INDEX = "uq_custom_roles_one_default"


class CustomRole(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "custom_roles"
    __table_args__ = (
        sa.UniqueConstraint("project_id", "name", name="uq_custom_roles_project_name"),
        # At most one default role per project
        sa.Index(
            DEFAULT_ROLE_INDEX,
            "project_id",
            unique=True,
            sqlite_where=sa.text("is_default"),
            postgresql_where=sa.text("is_default"),
        ),
    )

    project_id: uuid.UUID = Field(
        foreign_key="projects.id", ondelete="CASCADE", nullable=False, index=True
    )
    name: str = Field(nullable=False)
    description: Optional[str] = None
    # Catalog values, stored sorted; validated on every read
    permissions: list = Field(default_factory=list, sa_type=PortableJSON, nullable=False)
    is_default: bool = Field(default=False, nullable=False)
