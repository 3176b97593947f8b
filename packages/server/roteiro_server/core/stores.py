"""
Storage interfaces consumed by the authorization core, and their SQL implementation.

The resolver, evaluator and guard depend only on the ``Protocol`` types below;
production wires them to ``SqlAuthorizationStore`` over the request's
``AsyncSession`` and tests pass in-memory fakes.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional, Protocol

from sqlalchemy import func, or_
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from roteiro_server.models.membership import OrganizationMembership
from roteiro_server.models.organization import Organization
from roteiro_server.models.role import Permission, Role, RolePermission, UserRole
from roteiro_server.models.user import User
from roteiro_shared.schemas.common import MembershipStatus


class MembershipStore(Protocol):
    async def get_active_membership(
        self, org_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[OrganizationMembership]: ...

    async def count_active_with_role(self, org_id: uuid.UUID, role: str) -> int: ...


class OrganizationStore(Protocol):
    async def find_by_id_or_slug(self, identifier: str) -> Optional[Organization]: ...

    async def find_by_slug(self, slug: str) -> Optional[Organization]: ...


class UserStore(Protocol):
    async def get_last_active_org_id(self, user_id: uuid.UUID) -> Optional[uuid.UUID]: ...


class GrantStore(Protocol):
    async def list_custom_role_ids(
        self, user_id: uuid.UUID, org_id: uuid.UUID
    ) -> list[uuid.UUID]: ...

    async def roles_grant_permission(
        self, role_ids: Iterable[uuid.UUID], org_id: uuid.UUID, permission: str
    ) -> bool: ...

    async def list_role_permissions(
        self, role_ids: Iterable[uuid.UUID], org_id: uuid.UUID
    ) -> set[str]: ...


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        return None


class SqlAuthorizationStore:
    """All four store interfaces over one ``AsyncSession``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- memberships --------------------------------------------------------

    async def get_active_membership(
        self, org_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[OrganizationMembership]:
        result = await self.session.execute(
            select(OrganizationMembership)
            .where(
                OrganizationMembership.organization_id == org_id,
                OrganizationMembership.user_id == user_id,
                OrganizationMembership.status == MembershipStatus.ACTIVE.value,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def count_active_with_role(self, org_id: uuid.UUID, role: str) -> int:
        result = await self.session.execute(
            sa_select(func.count())
            .select_from(OrganizationMembership)
            .where(
                OrganizationMembership.organization_id == org_id,
                OrganizationMembership.role == role,
                OrganizationMembership.status == MembershipStatus.ACTIVE.value,
            )
        )
        return int(result.scalar_one())

    # -- organizations ------------------------------------------------------

    async def find_by_id_or_slug(self, identifier: str) -> Optional[Organization]:
        as_id = _parse_uuid(identifier)
        condition = Organization.slug == identifier
        if as_id is not None:
            condition = or_(Organization.id == as_id, condition)
        result = await self.session.execute(select(Organization).where(condition).limit(1))
        return result.scalars().first()

    async def find_by_slug(self, slug: str) -> Optional[Organization]:
        result = await self.session.execute(
            select(Organization).where(Organization.slug == slug).limit(1)
        )
        return result.scalars().first()

    # -- users --------------------------------------------------------------

    async def get_last_active_org_id(self, user_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.session.execute(
            select(User.last_active_org_id).where(User.id == user_id).limit(1)
        )
        return result.scalars().first()

    # -- custom role grants -------------------------------------------------

    async def list_custom_role_ids(
        self, user_id: uuid.UUID, org_id: uuid.UUID
    ) -> list[uuid.UUID]:
        result = await self.session.execute(
            select(UserRole.role_id).where(
                UserRole.user_id == user_id,
                UserRole.organization_id == org_id,
            )
        )
        return list(result.scalars().all())

    def _grants_query(self, role_ids: list[uuid.UUID], org_id: uuid.UUID):
        return (
            select(Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(
                RolePermission.role_id.in_(role_ids),
                Role.organization_id == org_id,
            )
        )

    async def roles_grant_permission(
        self, role_ids: Iterable[uuid.UUID], org_id: uuid.UUID, permission: str
    ) -> bool:
        role_ids = list(role_ids)
        if not role_ids:
            return False
        result = await self.session.execute(
            self._grants_query(role_ids, org_id).where(Permission.name == permission).limit(1)
        )
        return result.first() is not None

    async def list_role_permissions(
        self, role_ids: Iterable[uuid.UUID], org_id: uuid.UUID
    ) -> set[str]:
        role_ids = list(role_ids)
        if not role_ids:
            return set()
        result = await self.session.execute(self._grants_query(role_ids, org_id))
        return set(result.scalars().all())
