"""User model (mirror of the external auth provider's user record)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)
    name: str = Field(nullable=False, default="")
    email_verified: bool = Field(default=False, nullable=False)
    # Tenant-resolution fallback only; no FK to organizations
    last_active_org_id: Optional[uuid.UUID] = Field(default=None, index=True)
