from __future__ import annotations

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator


class SystemRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    AGENT = "AGENT"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SystemRole"]:
        """Case-insensitive lookup; returns None for unknown or empty values."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


# Higher number = more authority
ROLE_LEVELS: dict[SystemRole, int] = {
    SystemRole.OWNER: 4,
    SystemRole.ADMIN: 3,
    SystemRole.MANAGER: 2,
    SystemRole.AGENT: 1,
}

TOP_ROLE = SystemRole.OWNER


def role_level(value: Optional[str]) -> int:
    """Integer level of a stored role name; unknown roles rank below every system role."""
    role = SystemRole.parse(value)
    return ROLE_LEVELS[role] if role else 0


def normalize_role_input(value):
    """Pydantic before-validator: accept role names in any case."""
    if isinstance(value, str):
        return value.strip().upper()
    return value


RoleInput = Annotated[SystemRole, BeforeValidator(normalize_role_input)]


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorBody
