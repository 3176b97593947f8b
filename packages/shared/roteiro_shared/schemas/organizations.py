"""
Organization-related Pydantic schemas shared between the server and clients.

Covers: org create/list, tenant switching, post-signin default org resolution.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = r"^[a-z0-9-]+$"


def slugify_name(name: str) -> str:
    """Derive a URL-safe slug from an organization name."""
    slug = name.lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: Optional[str] = Field(
        None,
        min_length=3,
        max_length=50,
        pattern=SLUG_PATTERN,
        description="URL-safe org identifier; derived from the name when omitted",
    )

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name must not be blank")
        return value

    @field_validator("slug")
    @classmethod
    def _no_consecutive_hyphens(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and "--" in value:
            raise ValueError("Slug cannot contain consecutive hyphens")
        return value

    def resolved_slug(self) -> str:
        return self.slug or slugify_name(self.name)


class OrgSwitchRequest(BaseModel):
    org_id: uuid.UUID


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgCreateResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    remaining: int  # org creations left in the current rate-limit window


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: str  # the requesting user's role in this org
    status: str
    joined_at: datetime

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgListItem]


class OrgSwitchResponse(BaseModel):
    success: bool = True
    organization_id: uuid.UUID


class OrgContextResponse(BaseModel):
    """The caller's view of the resolved tenant."""
    organization_id: uuid.UUID
    role: str
    permissions: list[str]


class PostSigninResponse(BaseModel):
    success: bool = True
    organization_id: Optional[uuid.UUID] = None
    role: Optional[str] = None
    message: Optional[str] = None
