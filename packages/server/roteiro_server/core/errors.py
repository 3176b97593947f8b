"""
Error taxonomy for authorization and tenant-scoped mutations.

Every error carries an HTTP-equivalent status, a stable machine code and a
short non-sensitive message. ``AccessDenied`` subclasses are authorization
outcomes produced by the guard and the permission evaluator; the rest are
service-level rejections. Infrastructure failures (database, redis) are never
wrapped in these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


@dataclass(frozen=True)
class Denial:
    """Structured refusal returned by the non-raising guard entry point."""

    status: int
    code: str
    message: str
    extra: dict[str, Any] = field(default_factory=dict)


class AppError(Exception):
    status_code: int = 400
    code: str = "BAD_REQUEST"
    message: str = "Request rejected"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        return {}

    def to_denial(self) -> Denial:
        return Denial(self.status_code, self.code, self.message, self.extra())


# ---------------------------------------------------------------------------
# Authorization outcomes
# ---------------------------------------------------------------------------

class AccessDenied(AppError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Access denied"


class Unauthenticated(AccessDenied):
    status_code = 401
    code = "UNAUTHENTICATED"
    message = "Authentication required"


class MissingTenantContext(AccessDenied):
    status_code = 400
    code = "ORG_CONTEXT_REQUIRED"
    message = "Organization context required"


class NotAMember(AccessDenied):
    code = "NOT_A_MEMBER"
    message = "Not a member of this organization"


class InsufficientRole(AccessDenied):
    code = "INSUFFICIENT_ROLE"
    message = "Insufficient permissions"


class PermissionDenied(AccessDenied):
    code = "PERMISSION_DENIED"
    message = "Permission denied"

    def __init__(self, permission: str, message: Optional[str] = None):
        self.permission = permission
        super().__init__(message or f"Permission denied: {permission}")

    def extra(self) -> dict[str, Any]:
        return {"permission": self.permission}


class OwnerGrantRequired(AccessDenied):
    code = "OWNER_REQUIRED"
    message = "Only an owner can grant or modify the owner role"


# ---------------------------------------------------------------------------
# Service-level rejections
# ---------------------------------------------------------------------------

class LastOwnerViolation(AppError):
    status_code = 400
    code = "LAST_OWNER"
    message = "Cannot remove the last owner of the organization"


class RateLimited(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    message = "Rate limit exceeded"

    def __init__(self, reset_at: int, message: Optional[str] = None):
        self.reset_at = reset_at
        super().__init__(message)

    def extra(self) -> dict[str, Any]:
        return {"reset_at": self.reset_at}


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Conflict"


class InvalidRequest(AppError):
    status_code = 400
    code = "INVALID_REQUEST"
    message = "Invalid request"


class InvitationExpired(AppError):
    status_code = 410
    code = "INVITATION_EXPIRED"
    message = "Invitation has expired"


class InvitationEmailMismatch(AppError):
    status_code = 403
    code = "INVITATION_EMAIL_MISMATCH"
    message = "Invitation email does not match the authenticated user"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def error_payload(status: int, code: str, message: str, extra: Optional[dict] = None) -> dict:
    body = {"code": code, "message": message, "status": status}
    if extra:
        body.update(extra)
    return {"error": body}


def denial_response(denial: Denial) -> JSONResponse:
    return JSONResponse(
        status_code=denial.status,
        content=error_payload(denial.status, denial.code, denial.message, denial.extra),
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return denial_response(exc.to_denial())
