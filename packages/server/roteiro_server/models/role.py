"""Custom roles, the permission catalog table and their join tables."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Role(UUIDMixin, TimestampMixin, SQLModel, table=True):
    """Organization-defined role carrying additive permission grants."""

    __tablename__ = "roles"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "name", name="role_org_name_unique"),
        # Target of the composite FK from user_roles
        sa.UniqueConstraint("id", "organization_id", name="role_id_org_unique"),
    )

    organization_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    name: str = Field(nullable=False)
    description: Optional[str] = None
    is_system: bool = Field(default=False, nullable=False)


class Permission(UUIDMixin, SQLModel, table=True):
    __tablename__ = "permissions"

    name: str = Field(unique=True, nullable=False)  # resource:action
    resource: str = Field(nullable=False)
    action: str = Field(nullable=False)
    description: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )


class RolePermission(UUIDMixin, SQLModel, table=True):
    __tablename__ = "role_permissions"
    __table_args__ = (
        sa.UniqueConstraint("role_id", "permission_id", name="role_permission_unique"),
    )

    role_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    permission_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )


class UserRole(UUIDMixin, SQLModel, table=True):
    """Assignment of a custom role to a user within one organization."""

    __tablename__ = "user_roles"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "role_id", "organization_id", name="user_role_unique"),
        sa.Index("user_role_user_org_idx", "user_id", "organization_id"),
        # The assigned role must belong to the same organization as the assignment
        sa.ForeignKeyConstraint(
            ["role_id", "organization_id"],
            ["roles.id", "roles.organization_id"],
            name="user_role_role_org_fk",
            ondelete="CASCADE",
        ),
    )

    user_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        )
    )
    role_id: uuid.UUID = Field(nullable=False)
    organization_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
        )
    )
    assigned_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
