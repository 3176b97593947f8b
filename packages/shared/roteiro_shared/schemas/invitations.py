"""Invitation schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, field_validator

from .common import RoleInput, SystemRole


class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: RoleInput = SystemRole.AGENT

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class InvitationResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: RoleInput
    expires_at: datetime
    token: str  # shown once, delivered to the invitee out of band
    remaining: int


class InvitationAcceptResponse(BaseModel):
    organization_id: uuid.UUID
    membership_id: uuid.UUID
    role: str
    accepted_at: datetime
    already_accepted: bool = False
