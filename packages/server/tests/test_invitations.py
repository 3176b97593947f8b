"""
Invitation service tests against an in-memory SQLite database.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import add_membership, create_org, create_user
from roteiro_server.core.auth import SessionUser
from roteiro_server.core.errors import (
    InvitationEmailMismatch,
    InvitationExpired,
    NotFound,
    OwnerGrantRequired,
)
from roteiro_server.core.stores import SqlAuthorizationStore
from roteiro_server.models.base import as_aware, utcnow
from roteiro_server.models.membership import OrganizationMembership
from roteiro_server.models.user import User
from roteiro_server.services import invitations as invitation_service
from roteiro_server.services import members as member_service
from roteiro_shared.schemas.common import SystemRole
from roteiro_shared.schemas.invitations import InvitationCreateRequest

INVITEE = "Convidada@Example.com"


@pytest.fixture
async def org_setup(db_session):
    owner = await create_user(db_session, "owner@example.com")
    org = await create_org(db_session, owner)
    return org, owner


async def invite(db_session, org, owner, role="ADMIN", ttl_days=7):
    return await invitation_service.create_invitation(
        org.id,
        owner.id,
        SystemRole.OWNER,
        InvitationCreateRequest(email=INVITEE, role=role),
        ttl_days,
        db_session,
    )


async def membership_count(db_session, org) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(OrganizationMembership)
        .where(OrganizationMembership.organization_id == org.id)
    )
    return result.scalar_one()


def invitee(user_id=None, email="convidada@example.com") -> SessionUser:
    return SessionUser(id=user_id or uuid.uuid4(), email=email, name="Convidada")


class TestCreateInvitation:
    async def test_token_and_expiry(self, db_session, org_setup):
        org, owner = org_setup
        invitation = await invite(db_session, org, owner)

        assert invitation.email == "convidada@example.com"
        assert invitation.role == "ADMIN"
        assert len(invitation.token) >= 43
        remaining = as_aware(invitation.expires_at) - utcnow()
        assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)

    async def test_tokens_are_unique(self, db_session, org_setup):
        org, owner = org_setup
        first = await invite(db_session, org, owner)
        second = await invite(db_session, org, owner)
        assert first.token != second.token

    async def test_role_input_is_case_insensitive(self):
        req = InvitationCreateRequest(email="a@example.com", role="manager")
        assert req.role is SystemRole.MANAGER

    async def test_only_owner_invites_owner(self, db_session, org_setup):
        org, owner = org_setup
        with pytest.raises(OwnerGrantRequired):
            await invitation_service.create_invitation(
                org.id,
                owner.id,
                SystemRole.ADMIN,
                InvitationCreateRequest(email=INVITEE, role="OWNER"),
                7,
                db_session,
            )


class TestAcceptInvitation:
    async def test_accept_creates_membership_and_sets_last_active(self, db_session, org_setup):
        org, owner = org_setup
        invitation = await invite(db_session, org, owner)
        identity = invitee()

        outcome = await invitation_service.accept_invitation(invitation.token, identity, db_session)

        assert outcome.organization_id == org.id
        assert outcome.membership.role == "ADMIN"
        assert outcome.membership.status == "active"
        assert outcome.membership.invited_by == owner.id
        assert not outcome.already_accepted
        user = await db_session.get(User, identity.id)
        assert user.last_active_org_id == org.id

    async def test_accept_twice_is_idempotent(self, db_session, org_setup):
        org, owner = org_setup
        invitation = await invite(db_session, org, owner)
        identity = invitee()

        first = await invitation_service.accept_invitation(invitation.token, identity, db_session)
        second = await invitation_service.accept_invitation(invitation.token, identity, db_session)

        assert second.already_accepted
        assert second.membership.id == first.membership.id
        assert second.accepted_at == first.accepted_at
        assert await membership_count(db_session, org) == 2

    async def test_expired_invitation_fails(self, db_session, org_setup):
        org, owner = org_setup
        invitation = await invite(db_session, org, owner)
        invitation.expires_at = utcnow() - timedelta(seconds=1)
        db_session.add(invitation)
        await db_session.flush()

        with pytest.raises(InvitationExpired) as exc_info:
            await invitation_service.accept_invitation(invitation.token, invitee(), db_session)
        assert exc_info.value.status_code == 410
        assert await membership_count(db_session, org) == 1

    async def test_expired_fails_even_after_acceptance(self, db_session, org_setup):
        org, owner = org_setup
        invitation = await invite(db_session, org, owner)
        identity = invitee()
        await invitation_service.accept_invitation(invitation.token, identity, db_session)

        invitation.expires_at = utcnow() - timedelta(seconds=1)
        db_session.add(invitation)
        await db_session.flush()

        with pytest.raises(InvitationExpired):
            await invitation_service.accept_invitation(invitation.token, identity, db_session)

    async def test_email_mismatch(self, db_session, org_setup):
        org, owner = org_setup
        invitation = await invite(db_session, org, owner)
        with pytest.raises(InvitationEmailMismatch):
            await invitation_service.accept_invitation(
                invitation.token, invitee(email="someone@example.com"), db_session
            )

    async def test_unknown_token(self, db_session):
        with pytest.raises(NotFound):
            await invitation_service.accept_invitation("nope", invitee(), db_session)

    async def test_existing_membership_is_left_untouched(self, db_session, org_setup):
        org, owner = org_setup
        member = await create_user(db_session, "convidada@example.com")
        existing = await add_membership(db_session, org, member, SystemRole.MANAGER)
        invitation = await invite(db_session, org, owner, role="ADMIN")

        outcome = await invitation_service.accept_invitation(
            invitation.token, invitee(user_id=member.id), db_session
        )

        assert outcome.membership.id == existing.id
        assert outcome.membership.role == "MANAGER"
        assert await membership_count(db_session, org) == 2

    async def test_removed_member_rejoins_with_invited_role(self, db_session, org_setup):
        org, owner = org_setup
        member = await create_user(db_session, "convidada@example.com")
        existing = await add_membership(db_session, org, member, SystemRole.AGENT)
        await member_service.remove_member(org.id, member.id, SystemRole.OWNER, db_session)
        invitation = await invite(db_session, org, owner, role="MANAGER")

        outcome = await invitation_service.accept_invitation(
            invitation.token, invitee(user_id=member.id), db_session
        )

        assert outcome.membership.id == existing.id
        assert outcome.membership.status == "active"
        assert outcome.membership.role == "MANAGER"
        store = SqlAuthorizationStore(db_session)
        assert (await store.get_active_membership(org.id, member.id)).role == "MANAGER"
        assert await membership_count(db_session, org) == 2

    async def test_used_token_does_not_restore_removed_member(self, db_session, org_setup):
        org, owner = org_setup
        invitation = await invite(db_session, org, owner, role="AGENT")
        identity = invitee()
        await invitation_service.accept_invitation(invitation.token, identity, db_session)
        await member_service.remove_member(org.id, identity.id, SystemRole.OWNER, db_session)

        outcome = await invitation_service.accept_invitation(invitation.token, identity, db_session)

        assert outcome.already_accepted
        assert outcome.membership.status == "suspended"
        store = SqlAuthorizationStore(db_session)
        assert await store.get_active_membership(org.id, identity.id) is None
