"""Organization invitation model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class OrganizationInvitation(UUIDMixin, SQLModel, table=True):
    __tablename__ = "organization_invitations"

    organization_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    email: str = Field(nullable=False, index=True)  # stored lower-case
    role: str = Field(nullable=False, default="AGENT")
    token: str = Field(unique=True, nullable=False, index=True)
    invited_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    accepted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
