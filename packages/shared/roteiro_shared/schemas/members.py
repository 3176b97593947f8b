"""Membership management schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .common import MembershipStatus, RoleInput


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class MemberUpdateRequest(BaseModel):
    """Change a member's system role."""
    role: RoleInput


class MemberListQuery(BaseModel):
    status: MembershipStatus = MembershipStatus.ACTIVE
    limit: int = Field(default=50, gt=0, le=100)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    role: str
    status: MembershipStatus
    invited_by: Optional[uuid.UUID] = None
    joined_at: datetime
    name: Optional[str] = None
    email: Optional[str] = None


class MemberListResponse(BaseModel):
    organization_id: uuid.UUID
    members: List[MemberResponse]


class MemberUpdateResponse(BaseModel):
    membership: MemberResponse
    remaining: int
