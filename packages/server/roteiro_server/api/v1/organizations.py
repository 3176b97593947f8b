"""
Organization API endpoints.

GET    /api/v1/orgs                   - List orgs for the authenticated user
POST   /api/v1/orgs                   - Create a new org (caller becomes OWNER)
POST   /api/v1/orgs/switch            - Switch active org (body: org_id)
POST   /api/v1/orgs/{org_id}/switch   - Switch active org (path)
GET    /api/v1/org                    - Resolved org context: role + effective permissions
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roteiro_server.core.auth import Session
from roteiro_server.core.config import Settings
from roteiro_server.core.database import get_session
from roteiro_server.core.deps import (
    get_app_settings,
    get_permission_evaluator,
    get_rate_limiter,
    require_member,
    require_session,
)
from roteiro_server.core.guard import AuthorizedContext
from roteiro_server.core.rate_limit import RateLimiter
from roteiro_server.core.rbac import PermissionEvaluator
from roteiro_server.services import organizations as org_service
from roteiro_shared.schemas.organizations import (
    OrgContextResponse,
    OrgCreateRequest,
    OrgCreateResponse,
    OrgListItem,
    OrgListResponse,
    OrgSwitchRequest,
    OrgSwitchResponse,
)

# ---------------------------------------------------------------------------
# Non-org-scoped routes
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    auth: Session = Depends(require_session),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user is an active member of."""
    items = await org_service.list_user_orgs(auth.user.id, session)
    return OrgListResponse(data=[OrgListItem(**item) for item in items])


@router_global.post("/orgs", response_model=OrgCreateResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    auth: Session = Depends(require_session),
    session: AsyncSession = Depends(get_session),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
):
    """Create a new organization. The creator becomes its OWNER."""
    limit = await limiter.enforce(
        f"org:create:{auth.user.id}",
        settings.org_create_limit,
        settings.rate_limit_window_ms,
    )
    org = await org_service.create_org(body, auth.user, session)
    return OrgCreateResponse(id=org.id, name=org.name, slug=org.slug, remaining=limit.remaining)


@router_global.post("/orgs/switch", response_model=OrgSwitchResponse, tags=["Organizations"])
async def switch_org(
    body: OrgSwitchRequest,
    auth: Session = Depends(require_session),
    session: AsyncSession = Depends(get_session),
):
    """Set the caller's active org; requires an active membership there."""
    await org_service.switch_active_org(auth.user.id, body.org_id, session)
    return OrgSwitchResponse(organization_id=body.org_id)


@router_global.post("/orgs/{org_id}/switch", response_model=OrgSwitchResponse, tags=["Organizations"])
async def switch_org_by_path(
    org_id: uuid.UUID,
    auth: Session = Depends(require_session),
    session: AsyncSession = Depends(get_session),
):
    await org_service.switch_active_org(auth.user.id, org_id, session)
    return OrgSwitchResponse(organization_id=org_id)


# ---------------------------------------------------------------------------
# Org-scoped routes (organization resolved by the tenant resolver)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgContextResponse, tags=["Organizations"])
async def get_org_context(
    access: AuthorizedContext = Depends(require_member),
    evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
):
    """The caller's role and effective permissions in the resolved org."""
    permissions = await evaluator.effective_permissions(access.user_id, access.org_id)
    return OrgContextResponse(
        organization_id=access.org_id,
        role=access.membership.role,
        permissions=sorted(permissions),
    )
