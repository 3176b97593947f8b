"""
Role-based access control.

System roles form a total order (OWNER > ADMIN > MANAGER > AGENT) and each
carries a fixed permission set from ``ROLE_PERMISSIONS``. Organizations may
define custom roles whose grants are purely additive: they can add keys on top
of a member's system-role set but never take any away.

Predicates (``has_permission``, ``has_role``, ``has_minimum_role``,
``get_user_role``) never raise for "no access"; they return False/None.
Store failures propagate unchanged so callers can tell "denied" apart from
"could not determine".
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog

from roteiro_server.core.errors import InsufficientRole, PermissionDenied
from roteiro_server.core.stores import GrantStore, MembershipStore
from roteiro_shared.schemas.common import ROLE_LEVELS, TOP_ROLE, SystemRole, role_level

log = structlog.get_logger()

PERMISSION_KEYS: tuple[str, ...] = (
    "tenant:manage",
    "tenant:delete",
    "user:manage",
    "form:create",
    "form:edit",
    "form:publish",
    "form:map",
    "submission:create",
    "submission:view",
    "submission:export",
)

PERMISSION_DESCRIPTIONS: dict[str, str] = {
    "tenant:manage": "Manage organization settings and custom roles",
    "tenant:delete": "Delete the organization (owner only)",
    "user:manage": "View and manage organization members",
    "form:create": "Create form templates",
    "form:edit": "Edit form templates",
    "form:publish": "Publish form templates",
    "form:map": "Map form fields onto the PDF template",
    "submission:create": "Create submissions",
    "submission:view": "View submissions",
    "submission:export": "Export submissions as PDF",
}

ROLE_PERMISSIONS: dict[SystemRole, frozenset[str]] = {
    SystemRole.OWNER: frozenset(PERMISSION_KEYS),
    SystemRole.ADMIN: frozenset(PERMISSION_KEYS) - {"tenant:delete"},
    SystemRole.MANAGER: frozenset(
        {
            "form:create",
            "form:edit",
            "form:publish",
            "form:map",
            "submission:create",
            "submission:view",
            "submission:export",
        }
    ),
    SystemRole.AGENT: frozenset({"submission:create", "submission:view"}),
}


def default_permissions_for_role(role: Optional[SystemRole]) -> frozenset[str]:
    if role is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(role, frozenset())


def is_known_permission(key: str) -> bool:
    return key in PERMISSION_KEYS


def meets_role_floor(actual: Optional[str], required: SystemRole) -> bool:
    """Compare a stored role name against a required floor using ``ROLE_LEVELS``."""
    return role_level(actual) >= ROLE_LEVELS[required]


class PermissionEvaluator:
    """Answers permission and role questions for (user, org) pairs."""

    def __init__(self, memberships: MembershipStore, grants: GrantStore):
        self.memberships = memberships
        self.grants = grants

    async def has_permission(
        self, user_id: uuid.UUID, org_id: uuid.UUID, permission: str
    ) -> bool:
        # 1. Only an active membership participates in authorization
        membership = await self.memberships.get_active_membership(org_id, user_id)
        if membership is None:
            return False

        role = SystemRole.parse(membership.role)

        # 2. Top tier bypasses everything else
        if role is TOP_ROLE:
            return True

        # 3. Static system-role grants
        if permission in default_permissions_for_role(role):
            return True

        # 4. Additive custom-role grants, scoped to the same org
        role_ids = await self.grants.list_custom_role_ids(user_id, org_id)
        if role_ids and await self.grants.roles_grant_permission(role_ids, org_id, permission):
            return True

        return False

    async def require_permission(
        self, user_id: uuid.UUID, org_id: uuid.UUID, permission: str
    ) -> None:
        if not await self.has_permission(user_id, org_id, permission):
            log.info(
                "rbac.permission_denied",
                user_id=str(user_id),
                org_id=str(org_id),
                permission=permission,
            )
            raise PermissionDenied(permission)

    async def get_user_role(
        self, user_id: uuid.UUID, org_id: uuid.UUID
    ) -> Optional[SystemRole]:
        membership = await self.memberships.get_active_membership(org_id, user_id)
        if membership is None:
            return None
        return SystemRole.parse(membership.role)

    async def has_role(
        self, user_id: uuid.UUID, org_id: uuid.UUID, role: SystemRole
    ) -> bool:
        return await self.get_user_role(user_id, org_id) is role

    async def require_role(
        self, user_id: uuid.UUID, org_id: uuid.UUID, role: SystemRole
    ) -> None:
        if not await self.has_role(user_id, org_id, role):
            raise InsufficientRole(f"Role required: {role.value}")

    async def has_minimum_role(
        self, user_id: uuid.UUID, org_id: uuid.UUID, minimum: SystemRole
    ) -> bool:
        membership = await self.memberships.get_active_membership(org_id, user_id)
        if membership is None:
            return False
        return meets_role_floor(membership.role, minimum)

    async def effective_permissions(
        self, user_id: uuid.UUID, org_id: uuid.UUID
    ) -> set[str]:
        """Union of system-role and custom-role grants, computed fresh per call."""
        membership = await self.memberships.get_active_membership(org_id, user_id)
        if membership is None:
            return set()

        role = SystemRole.parse(membership.role)
        if role is TOP_ROLE:
            return set(PERMISSION_KEYS)

        granted = set(default_permissions_for_role(role))
        role_ids = await self.grants.list_custom_role_ids(user_id, org_id)
        if role_ids:
            granted |= await self.grants.list_role_permissions(role_ids, org_id)
        return granted
