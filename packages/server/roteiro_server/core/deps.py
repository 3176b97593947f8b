"""
FastAPI dependency wiring for the authorization core.

Process-wide collaborators (session provider, tenant config, rate limiter)
live on ``app.state`` and are built once in ``create_app``; per-request
objects (stores, resolver, evaluator, guard) are built over the request's
database session.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from roteiro_server.core.auth import Session, SessionProvider
from roteiro_server.core.config import Settings
from roteiro_server.core.database import get_session
from roteiro_server.core.errors import Unauthenticated
from roteiro_server.core.guard import AuthorizedContext, OrgAccessGuard
from roteiro_server.core.rate_limit import RateLimiter
from roteiro_server.core.rbac import PermissionEvaluator
from roteiro_server.core.stores import SqlAuthorizationStore
from roteiro_server.core.tenant import TenantResolver
from roteiro_shared.schemas.common import SystemRole


def get_app_settings(request: Request) -> Settings:
    """The settings the app was built with, not a fresh read of the environment."""
    return request.app.state.settings


def get_session_provider(request: Request) -> SessionProvider:
    return request.app.state.session_provider


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


async def get_authorization_store(
    session: AsyncSession = Depends(get_session),
) -> SqlAuthorizationStore:
    return SqlAuthorizationStore(session)


async def get_tenant_resolver(
    request: Request,
    store: SqlAuthorizationStore = Depends(get_authorization_store),
    sessions: SessionProvider = Depends(get_session_provider),
) -> TenantResolver:
    return TenantResolver(request.app.state.tenant_config, store, store, sessions)


async def get_permission_evaluator(
    store: SqlAuthorizationStore = Depends(get_authorization_store),
) -> PermissionEvaluator:
    return PermissionEvaluator(store, store)


async def get_guard(
    sessions: SessionProvider = Depends(get_session_provider),
    resolver: TenantResolver = Depends(get_tenant_resolver),
    store: SqlAuthorizationStore = Depends(get_authorization_store),
) -> OrgAccessGuard:
    return OrgAccessGuard(sessions, resolver, store)


async def require_session(
    request: Request,
    sessions: SessionProvider = Depends(get_session_provider),
) -> Session:
    """Authenticated session for routes that are not tenant-scoped."""
    session = await sessions.get_session(request.headers)
    if session is None:
        raise Unauthenticated()
    return session


def require_org_access(required_role: Optional[SystemRole] = None):
    """Dependency factory: run the guard with an optional role floor."""

    async def dependency(
        request: Request,
        guard: OrgAccessGuard = Depends(get_guard),
    ) -> AuthorizedContext:
        return await guard.require(request, required_role)

    return dependency


def require_permission(permission: str, required_role: Optional[SystemRole] = None):
    """Dependency factory: guard first, then a fine-grained permission check."""

    async def dependency(
        access: AuthorizedContext = Depends(require_org_access(required_role)),
        evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
    ) -> AuthorizedContext:
        await evaluator.require_permission(access.user_id, access.org_id, permission)
        return access

    return dependency


require_member = require_org_access()
require_admin = require_org_access(SystemRole.ADMIN)
