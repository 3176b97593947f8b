"""Organization (tenant) model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False)
    slug: str = Field(unique=True, nullable=False, index=True)
    domain: Optional[str] = Field(default=None, index=True)  # verified domain for SSO
    domain_verified_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    metadata_: Optional[dict] = Field(default=None, sa_column=sa.Column("metadata", sa.JSON))
