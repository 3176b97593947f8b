"""
Invitation API endpoints.

POST /api/v1/invitations/{token}/accept - Accept an invitation (invitee's session)
POST /api/v1/org/invitations            - Invite someone to the resolved org (ADMIN+)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roteiro_server.core.auth import Session
from roteiro_server.core.config import Settings
from roteiro_server.core.database import get_session
from roteiro_server.core.deps import (
    get_app_settings,
    get_rate_limiter,
    require_admin,
    require_session,
)
from roteiro_server.core.guard import AuthorizedContext
from roteiro_server.core.rate_limit import RateLimiter
from roteiro_server.services import invitations as invitation_service
from roteiro_shared.schemas.invitations import (
    InvitationAcceptResponse,
    InvitationCreateRequest,
    InvitationResponse,
)

router_global = APIRouter()
router_scoped = APIRouter()


@router_global.post(
    "/invitations/{token}/accept",
    response_model=InvitationAcceptResponse,
    tags=["Invitations"],
)
async def accept_invitation(
    token: str,
    auth: Session = Depends(require_session),
    session: AsyncSession = Depends(get_session),
):
    """Accept an invitation addressed to the caller's email. Safe to repeat."""
    outcome = await invitation_service.accept_invitation(token, auth.user, session)
    return InvitationAcceptResponse(
        organization_id=outcome.organization_id,
        membership_id=outcome.membership.id,
        role=outcome.membership.role,
        accepted_at=outcome.accepted_at,
        already_accepted=outcome.already_accepted,
    )


@router_scoped.post(
    "/invitations",
    response_model=InvitationResponse,
    status_code=201,
    tags=["Invitations"],
)
async def create_invitation(
    body: InvitationCreateRequest,
    access: AuthorizedContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
):
    """Invite by email (ADMIN+; only an OWNER may invite an OWNER). The token is returned once."""
    invitation_service.check_invite_role(body.role, access.role)
    limit = await limiter.enforce(
        f"invite:create:{access.user_id}:{access.org_id}",
        settings.invite_create_limit,
        settings.rate_limit_window_ms,
    )
    invitation = await invitation_service.create_invitation(
        access.org_id,
        access.user_id,
        access.role,
        body,
        settings.invitation_ttl_days,
        session,
    )
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role,
        expires_at=invitation.expires_at,
        token=invitation.token,
        remaining=limit.remaining,
    )
