"""Organization membership (user <-> org with a system role)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class OrganizationMembership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organization_memberships"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "user_id", name="org_membership_unique"),
        sa.Index("org_membership_org_user_status_idx", "organization_id", "user_id", "status"),
        sa.Index("org_membership_org_status_idx", "organization_id", "status"),
    )

    organization_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
        )
    )
    user_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    role: str = Field(nullable=False, default="AGENT")  # OWNER | ADMIN | MANAGER | AGENT
    status: str = Field(nullable=False, default="active")  # active | pending | suspended
    invited_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
