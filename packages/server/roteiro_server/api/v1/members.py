"""
Membership management endpoints (org-scoped).

GET    /api/v1/org/members             - List members (requires user:manage)
PUT    /api/v1/org/members/{user_id}   - Change a member's role (ADMIN+)
DELETE /api/v1/org/members/{user_id}   - Suspend a membership (ADMIN+)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roteiro_server.core.config import Settings
from roteiro_server.core.database import get_session
from roteiro_server.core.deps import (
    get_app_settings,
    get_rate_limiter,
    require_admin,
    require_permission,
)
from roteiro_server.core.errors import OwnerGrantRequired
from roteiro_server.core.guard import AuthorizedContext
from roteiro_server.core.rate_limit import RateLimiter
from roteiro_server.services import members as member_service
from roteiro_shared.schemas.common import SystemRole
from roteiro_shared.schemas.members import (
    MemberListQuery,
    MemberListResponse,
    MemberResponse,
    MemberUpdateRequest,
    MemberUpdateResponse,
)

router = APIRouter()


@router.get("/members", response_model=MemberListResponse, tags=["Members"])
async def list_members(
    query: MemberListQuery = Depends(),
    access: AuthorizedContext = Depends(require_permission("user:manage")),
    session: AsyncSession = Depends(get_session),
):
    items = await member_service.list_members(
        access.org_id, session, status=query.status, limit=query.limit
    )
    return MemberListResponse(
        organization_id=access.org_id,
        members=[MemberResponse(**item) for item in items],
    )


@router.put("/members/{user_id}", response_model=MemberUpdateResponse, tags=["Members"])
async def update_member(
    user_id: uuid.UUID,
    body: MemberUpdateRequest,
    access: AuthorizedContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
):
    """Change a member's system role. Granting OWNER requires being an OWNER."""
    if body.role is SystemRole.OWNER and access.role is not SystemRole.OWNER:
        raise OwnerGrantRequired("Only an owner can grant the owner role")

    limit = await limiter.enforce(
        f"member:update:{access.user_id}:{access.org_id}",
        settings.member_update_limit,
        settings.rate_limit_window_ms,
    )
    membership = await member_service.update_member_role(
        access.org_id, user_id, body.role, access.role, session
    )
    return MemberUpdateResponse(
        membership=MemberResponse(**member_service.member_info(membership)),
        remaining=limit.remaining,
    )


@router.delete("/members/{user_id}", status_code=204, tags=["Members"])
async def remove_member(
    user_id: uuid.UUID,
    access: AuthorizedContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Suspend a membership. Access is revoked immediately."""
    await member_service.remove_member(access.org_id, user_id, access.role, session)
