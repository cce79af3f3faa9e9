"""Invitation model (pending -> accepted | revoked | expired)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Invitation(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "invitations"

    project_id: uuid.UUID = Field(
        foreign_key="projects.id", ondelete="CASCADE", nullable=False, index=True
    )
    email: str = Field(nullable=False, index=True)
    custom_role_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="custom_roles.id", ondelete="SET NULL", index=True
    )
    invited_by: uuid.UUID = Field(nullable=False)
    # bcrypt hash of the token's secret part; the plaintext is never stored
    token_hash: str = Field(nullable=False)
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    status: str = Field(default="pending", nullable=False, index=True)
    accepted_by: Optional[uuid.UUID] = None
    resolved_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
