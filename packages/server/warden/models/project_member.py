"""Project membership, optionally bound to a custom role of the same project."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin

MEMBER_UNIQUE_CONSTRAINT = "uq_project_members_project_user"


class ProjectMember(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "project_members"
    __table_args__ = (
        sa.UniqueConstraint("project_id", "user_id", name=MEMBER_UNIQUE_CONSTRAINT),
    )

    project_id: uuid.UUID = Field(
        foreign_key="projects.id", ondelete="CASCADE", nullable=False, index=True
    )
    user_id: uuid.UUID = Field(nullable=False, index=True)
    custom_role_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="custom_roles.id", ondelete="RESTRICT", index=True
    )
