"""
Invitation service: issuing invitation tokens and accepting them.

Acceptance is idempotent. The invitation row is locked for the duration of
the transaction; a second acceptor waits, then sees ``accepted_at`` already
set and gets the existing membership back. The membership insert runs in a
savepoint so a unique-constraint collision on (org, user) resolves to the
existing row instead of failing the request. A member who was removed
(suspended) and invited again is reactivated with the invited role; replaying
an already used token never restores access.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from roteiro_server.core.auth import SessionUser
from roteiro_server.core.errors import (
    InvitationEmailMismatch,
    InvitationExpired,
    NotFound,
    OwnerGrantRequired,
)
from roteiro_server.models.base import as_aware, utcnow
from roteiro_server.models.invitation import OrganizationInvitation
from roteiro_server.models.membership import OrganizationMembership
from roteiro_server.services import users as user_service
from roteiro_shared.schemas.common import MembershipStatus, SystemRole
from roteiro_shared.schemas.invitations import InvitationCreateRequest

log = structlog.get_logger()

TOKEN_BYTES = 32


@dataclass(frozen=True)
class AcceptOutcome:
    organization_id: uuid.UUID
    membership: OrganizationMembership
    accepted_at: datetime
    already_accepted: bool


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def check_invite_role(role: SystemRole, inviter_role: Optional[SystemRole]) -> None:
    if role is SystemRole.OWNER and inviter_role is not SystemRole.OWNER:
        raise OwnerGrantRequired("Only an owner can invite another owner")


async def create_invitation(
    org_id: uuid.UUID,
    inviter_id: uuid.UUID,
    inviter_role: Optional[SystemRole],
    req: InvitationCreateRequest,
    ttl_days: int,
    session: AsyncSession,
) -> OrganizationInvitation:
    check_invite_role(req.role, inviter_role)

    invitation = OrganizationInvitation(
        organization_id=org_id,
        email=req.email,
        role=req.role.value,
        token=generate_invitation_token(),
        invited_by=inviter_id,
        expires_at=utcnow() + timedelta(days=ttl_days),
    )
    session.add(invitation)
    await session.flush()

    log.info(
        "invitation.created",
        org_id=str(org_id),
        invitation_id=str(invitation.id),
        role=invitation.role,
    )
    return invitation


async def _membership(
    org_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession, lock: bool = False
) -> Optional[OrganizationMembership]:
    query = select(OrganizationMembership).where(
        OrganizationMembership.organization_id == org_id,
        OrganizationMembership.user_id == user_id,
    )
    if lock:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def _insert_membership_if_absent(
    invitation: OrganizationInvitation, user_id: uuid.UUID, session: AsyncSession
) -> OrganizationMembership:
    existing = await _membership(invitation.organization_id, user_id, session)
    if existing is not None:
        return existing

    membership = OrganizationMembership(
        organization_id=invitation.organization_id,
        user_id=user_id,
        role=invitation.role,
        status=MembershipStatus.ACTIVE.value,
        invited_by=invitation.invited_by or user_id,
    )
    try:
        async with session.begin_nested():
            session.add(membership)
            await session.flush()
    except IntegrityError:
        # A concurrent insert won the (org, user) unique constraint
        existing = await _membership(invitation.organization_id, user_id, session)
        if existing is None:
            raise
        return existing
    return membership


async def _join(
    invitation: OrganizationInvitation,
    user_id: uuid.UUID,
    now: datetime,
    session: AsyncSession,
) -> OrganizationMembership:
    """Membership for a first acceptance.

    An active membership is kept as it is. A suspended or pending one (a member
    who was removed and invited again) is reactivated with the invited role.
    """
    existing = await _membership(invitation.organization_id, user_id, session, lock=True)
    if existing is None:
        return await _insert_membership_if_absent(invitation, user_id, session)
    if existing.status == MembershipStatus.ACTIVE.value:
        return existing

    previous = existing.status
    existing.status = MembershipStatus.ACTIVE.value
    existing.role = invitation.role
    existing.invited_by = invitation.invited_by or user_id
    existing.joined_at = now
    session.add(existing)
    await session.flush()

    log.info(
        "membership.reactivated",
        org_id=str(invitation.organization_id),
        user_id=str(user_id),
        previous=previous,
        role=existing.role,
    )
    return existing


async def accept_invitation(
    token: str,
    identity: SessionUser,
    session: AsyncSession,
) -> AcceptOutcome:
    result = await session.execute(
        select(OrganizationInvitation)
        .where(OrganizationInvitation.token == token)
        .with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise NotFound("Invitation not found")

    now = utcnow()
    if as_aware(invitation.expires_at) <= now:
        raise InvitationExpired()

    if not identity.email or identity.email.lower() != invitation.email.lower():
        raise InvitationEmailMismatch()

    await user_service.ensure_user(identity, session)

    if invitation.accepted_at is not None:
        membership = await _insert_membership_if_absent(invitation, identity.id, session)
        return AcceptOutcome(
            organization_id=invitation.organization_id,
            membership=membership,
            accepted_at=as_aware(invitation.accepted_at),
            already_accepted=True,
        )

    membership = await _join(invitation, identity.id, now, session)
    invitation.accepted_at = now
    session.add(invitation)
    await user_service.set_last_active_org(identity.id, invitation.organization_id, session)

    log.info(
        "invitation.accepted",
        org_id=str(invitation.organization_id),
        invitation_id=str(invitation.id),
        user_id=str(identity.id),
    )
    return AcceptOutcome(
        organization_id=invitation.organization_id,
        membership=membership,
        accepted_at=now,
        already_accepted=False,
    )
