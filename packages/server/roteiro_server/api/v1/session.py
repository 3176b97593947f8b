"""
Session lifecycle endpoints.

POST /api/v1/session/post-signin - Resolve and record the default org after sign-in
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roteiro_server.core.auth import Session
from roteiro_server.core.database import get_session
from roteiro_server.core.deps import require_session
from roteiro_server.services import organizations as org_service
from roteiro_shared.schemas.organizations import PostSigninResponse

router = APIRouter()


@router.post("/post-signin", response_model=PostSigninResponse, tags=["Session"])
async def post_signin(
    auth: Session = Depends(require_session),
    session: AsyncSession = Depends(get_session),
):
    """Called by the client once sign-in succeeds; picks the org to land in."""
    membership = await org_service.resolve_default_org(auth.user, session)
    if membership is None:
        return PostSigninResponse(message="No organization found. User should create one.")
    return PostSigninResponse(
        organization_id=membership.organization_id,
        role=membership.role,
    )
