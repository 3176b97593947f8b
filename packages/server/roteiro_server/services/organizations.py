"""
Organization service: listing, creation, active-org switching, post-signin resolution.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from roteiro_server.core.auth import SessionUser
from roteiro_server.core.errors import Conflict, InvalidRequest, NotAMember
from roteiro_server.models.membership import OrganizationMembership
from roteiro_server.models.organization import Organization
from roteiro_server.services import users as user_service
from roteiro_shared.schemas.common import MembershipStatus, SystemRole
from roteiro_shared.schemas.organizations import OrgCreateRequest

log = structlog.get_logger()

MIN_SLUG_LENGTH = 3


async def list_user_orgs(user_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    """List the orgs where the user holds an active membership, with their role."""
    result = await session.execute(
        select(Organization, OrganizationMembership)
        .join(OrganizationMembership, OrganizationMembership.organization_id == Organization.id)
        .where(
            OrganizationMembership.user_id == user_id,
            OrganizationMembership.status == MembershipStatus.ACTIVE.value,
        )
        .order_by(OrganizationMembership.joined_at)
    )
    return [
        {
            "id": org.id,
            "name": org.name,
            "slug": org.slug,
            "role": membership.role,
            "status": membership.status,
            "joined_at": membership.joined_at,
        }
        for org, membership in result.all()
    ]


async def _slug_taken(slug: str, session: AsyncSession) -> bool:
    existing = await session.execute(select(Organization.id).where(Organization.slug == slug))
    return existing.first() is not None


async def create_org(
    req: OrgCreateRequest,
    creator: SessionUser,
    session: AsyncSession,
) -> Organization:
    """Create an org; the creator becomes its OWNER in the same transaction."""
    slug = req.resolved_slug()
    if len(slug) < MIN_SLUG_LENGTH:
        raise InvalidRequest("Could not derive a valid slug from the name; provide one explicitly")

    if await _slug_taken(slug, session):
        raise Conflict("Organization slug already taken")

    await user_service.ensure_user(creator, session)

    org = Organization(name=req.name, slug=slug, created_by=creator.id)
    try:
        async with session.begin_nested():
            session.add(org)
            await session.flush()
    except IntegrityError as exc:
        # A concurrent create took the slug after the check above
        raise Conflict("Organization slug already taken") from exc

    session.add(
        OrganizationMembership(
            organization_id=org.id,
            user_id=creator.id,
            role=SystemRole.OWNER.value,
            status=MembershipStatus.ACTIVE.value,
        )
    )
    await user_service.set_last_active_org(creator.id, org.id, session)

    log.info("org.created", org_id=str(org.id), slug=slug, creator=str(creator.id))
    return org


async def _active_membership(
    user_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession
) -> Optional[OrganizationMembership]:
    result = await session.execute(
        select(OrganizationMembership).where(
            OrganizationMembership.organization_id == org_id,
            OrganizationMembership.user_id == user_id,
            OrganizationMembership.status == MembershipStatus.ACTIVE.value,
        )
    )
    return result.scalar_one_or_none()


async def switch_active_org(
    user_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession
) -> None:
    """Record ``org_id`` as the user's last active org; requires an active membership."""
    if await _active_membership(user_id, org_id, session) is None:
        raise NotAMember()
    await user_service.set_last_active_org(user_id, org_id, session)
    log.info("org.switched", user_id=str(user_id), org_id=str(org_id))


async def resolve_default_org(
    identity: SessionUser, session: AsyncSession
) -> Optional[OrganizationMembership]:
    """
    Pick the org a freshly signed-in user lands in.

    The last active org wins while its membership is still active; otherwise
    the oldest active membership is chosen and recorded as last active.
    Returns None when the user belongs to no organization.
    """
    user = await user_service.ensure_user(identity, session)

    if user.last_active_org_id is not None:
        membership = await _active_membership(user.id, user.last_active_org_id, session)
        if membership is not None:
            return membership

    result = await session.execute(
        select(OrganizationMembership)
        .where(
            OrganizationMembership.user_id == user.id,
            OrganizationMembership.status == MembershipStatus.ACTIVE.value,
        )
        .order_by(OrganizationMembership.joined_at)
        .limit(1)
    )
    membership = result.scalars().first()
    if membership is None:
        if user.last_active_org_id is not None:
            await user_service.set_last_active_org(user.id, None, session)
        return None

    await user_service.set_last_active_org(user.id, membership.organization_id, session)
    return membership
