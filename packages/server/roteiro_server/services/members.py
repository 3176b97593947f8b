"""
Membership service: listing members, role changes and removal.

Role changes and removals run inside the request transaction. The target
org's active OWNER rows are locked in id order, then the target membership
row, before the owner count is read. Two concurrent demotions therefore
queue on the same rows instead of each observing two owners, and no two
mutations take the locks in opposite order.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from roteiro_server.core.errors import LastOwnerViolation, NotFound, OwnerGrantRequired
from roteiro_server.models.membership import OrganizationMembership
from roteiro_server.models.user import User
from roteiro_shared.schemas.common import MembershipStatus, SystemRole

log = structlog.get_logger()


def member_info(membership: OrganizationMembership, user: Optional[User] = None) -> dict:
    return {
        "id": membership.id,
        "user_id": membership.user_id,
        "role": membership.role,
        "status": membership.status,
        "invited_by": membership.invited_by,
        "joined_at": membership.joined_at,
        "name": user.name if user else None,
        "email": user.email if user else None,
    }


async def list_members(
    org_id: uuid.UUID,
    session: AsyncSession,
    status: MembershipStatus = MembershipStatus.ACTIVE,
    limit: int = 50,
) -> list[dict]:
    result = await session.execute(
        select(OrganizationMembership, User)
        .join(User, User.id == OrganizationMembership.user_id)
        .where(
            OrganizationMembership.organization_id == org_id,
            OrganizationMembership.status == status.value,
        )
        .order_by(OrganizationMembership.joined_at)
        .limit(limit)
    )
    return [member_info(membership, user) for membership, user in result.all()]


def active_owners_query(org_id: uuid.UUID):
    """Active OWNER rows of the org, locked in id order."""
    return (
        select(OrganizationMembership.id)
        .where(
            OrganizationMembership.organization_id == org_id,
            OrganizationMembership.role == SystemRole.OWNER.value,
            OrganizationMembership.status == MembershipStatus.ACTIVE.value,
        )
        .order_by(OrganizationMembership.id)
        .with_for_update()
    )


async def lock_active_owners(org_id: uuid.UUID, session: AsyncSession) -> list[uuid.UUID]:
    result = await session.execute(active_owners_query(org_id))
    return list(result.scalars().all())


async def _locked_membership(
    org_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> OrganizationMembership:
    result = await session.execute(
        select(OrganizationMembership)
        .where(
            OrganizationMembership.organization_id == org_id,
            OrganizationMembership.user_id == user_id,
        )
        .with_for_update()
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise NotFound("Member not found")
    return membership


async def _lock_for_change(
    org_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> tuple[list[uuid.UUID], OrganizationMembership]:
    # Owner rows first, then the target: every mutation takes locks in the same order
    owners = await lock_active_owners(org_id, session)
    membership = await _locked_membership(org_id, user_id, session)
    return owners, membership


def _is_active_owner(membership: OrganizationMembership) -> bool:
    return (
        SystemRole.parse(membership.role) is SystemRole.OWNER
        and membership.status == MembershipStatus.ACTIVE.value
    )


async def update_member_role(
    org_id: uuid.UUID,
    target_user_id: uuid.UUID,
    new_role: SystemRole,
    actor_role: Optional[SystemRole],
    session: AsyncSession,
) -> OrganizationMembership:
    """Change a member's system role, enforcing owner-only grants and the last-owner rule."""
    if new_role is SystemRole.OWNER and actor_role is not SystemRole.OWNER:
        raise OwnerGrantRequired("Only an owner can grant the owner role")

    owners, membership = await _lock_for_change(org_id, target_user_id, session)
    current = SystemRole.parse(membership.role)

    if current is SystemRole.OWNER and actor_role is not SystemRole.OWNER:
        raise OwnerGrantRequired("Only an owner can change another owner's role")

    if _is_active_owner(membership) and new_role is not SystemRole.OWNER and len(owners) <= 1:
        raise LastOwnerViolation()

    previous = membership.role
    membership.role = new_role.value
    session.add(membership)
    await session.flush()

    log.info(
        "member.role_updated",
        org_id=str(org_id),
        user_id=str(target_user_id),
        previous=previous,
        role=new_role.value,
    )
    return membership


async def remove_member(
    org_id: uuid.UUID,
    target_user_id: uuid.UUID,
    actor_role: Optional[SystemRole],
    session: AsyncSession,
) -> OrganizationMembership:
    """Suspend a membership; access is revoked at once because only active rows authorize."""
    owners, membership = await _lock_for_change(org_id, target_user_id, session)

    if SystemRole.parse(membership.role) is SystemRole.OWNER:
        if actor_role is not SystemRole.OWNER:
            raise OwnerGrantRequired("Only an owner can remove another owner")
        if membership.status == MembershipStatus.ACTIVE.value and len(owners) <= 1:
            raise LastOwnerViolation()

    membership.status = MembershipStatus.SUSPENDED.value
    session.add(membership)
    await session.flush()

    log.info("member.removed", org_id=str(org_id), user_id=str(target_user_id))
    return membership
