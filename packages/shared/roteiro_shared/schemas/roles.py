"""Custom (per-organization) role schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CustomRoleCreateRequest(BaseModel):
    name: str = Field(
        ...,
        min_length=2,
        max_length=64,
        pattern=r"^[a-z0-9][a-z0-9_-]*$",
        description="Role name, unique within the organization",
    )
    description: Optional[str] = Field(None, max_length=500)
    permissions: List[str] = Field(default_factory=list, description="Granted permission keys")


class RoleAssignmentRequest(BaseModel):
    user_id: uuid.UUID


class CustomRoleResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    permissions: List[str]
    created_at: datetime


class CustomRoleListResponse(BaseModel):
    data: List[CustomRoleResponse]


class RoleAssignmentResponse(BaseModel):
    role_id: uuid.UUID
    user_id: uuid.UUID
    organization_id: uuid.UUID


class PermissionCatalogResponse(BaseModel):
    permissions: List[str]
    role_permissions: dict[str, List[str]]
