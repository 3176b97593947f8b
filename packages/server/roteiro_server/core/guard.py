"""
Organization access guard: the mandatory entry gate for tenant-scoped requests.

Composes session authentication, tenant resolution, active-membership lookup
and the role floor check. ``require`` raises an ``AccessDenied`` subclass;
``evaluate`` returns the same outcome as a ``Denial`` value instead.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Union

import structlog
from starlette.requests import HTTPConnection

from roteiro_server.core.auth import Session, SessionProvider
from roteiro_server.core.errors import (
    AccessDenied,
    Denial,
    InsufficientRole,
    MissingTenantContext,
    NotAMember,
    Unauthenticated,
)
from roteiro_server.core.logging import bind_tenant_context
from roteiro_server.core.rbac import meets_role_floor
from roteiro_server.core.stores import MembershipStore
from roteiro_server.core.tenant import TenantResolver
from roteiro_server.models.membership import OrganizationMembership
from roteiro_shared.schemas.common import SystemRole

log = structlog.get_logger()


@dataclass(frozen=True)
class AuthorizedContext:
    org_id: uuid.UUID
    membership: OrganizationMembership
    session: Session

    @property
    def user_id(self) -> uuid.UUID:
        return self.session.user.id

    @property
    def role(self) -> Optional[SystemRole]:
        return SystemRole.parse(self.membership.role)


class OrgAccessGuard:
    def __init__(
        self,
        sessions: SessionProvider,
        resolver: TenantResolver,
        memberships: MembershipStore,
    ):
        self.sessions = sessions
        self.resolver = resolver
        self.memberships = memberships

    async def require(
        self,
        request: HTTPConnection,
        required_role: Optional[SystemRole] = None,
    ) -> AuthorizedContext:
        session = await self.sessions.get_session(request.headers)
        if session is None:
            raise Unauthenticated()

        org_id = await self.resolver.resolve(request)
        if org_id is None:
            raise MissingTenantContext()

        membership = await self.memberships.get_active_membership(org_id, session.user.id)
        if membership is None:
            log.info("guard.not_a_member", user_id=str(session.user.id), org_id=str(org_id))
            raise NotAMember()

        if required_role is not None and not meets_role_floor(membership.role, required_role):
            log.info(
                "guard.insufficient_role",
                user_id=str(session.user.id),
                org_id=str(org_id),
                role=membership.role,
                required=required_role.value,
            )
            raise InsufficientRole()

        bind_tenant_context(org_id, session.user.id)
        return AuthorizedContext(org_id=org_id, membership=membership, session=session)

    async def evaluate(
        self,
        request: HTTPConnection,
        required_role: Optional[SystemRole] = None,
    ) -> Union[AuthorizedContext, Denial]:
        try:
            return await self.require(request, required_role)
        except AccessDenied as exc:
            return exc.to_denial()
