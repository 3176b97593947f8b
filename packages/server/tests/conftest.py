"""
Shared fixtures: in-memory store fakes, request builder, SQLite-backed sessions.
"""

from __future__ import annotations

import os

os.environ.setdefault("ROTEIRO_ENVIRONMENT", "test")
os.environ.setdefault("ROTEIRO_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ROTEIRO_LOG_FORMAT", "text")

import uuid
from typing import Iterable, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from starlette.requests import Request

import roteiro_server.models  # noqa: F401
from roteiro_server.core.auth import Session, SessionUser
from roteiro_server.models.membership import OrganizationMembership
from roteiro_server.models.organization import Organization
from roteiro_server.models.user import User
from roteiro_shared.schemas.common import MembershipStatus, SystemRole


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------

class FakeStore:
    """Implements every storage protocol the authorization core consumes."""

    def __init__(self):
        self.memberships: list[OrganizationMembership] = []
        self.organizations: list[Organization] = []
        self.last_active: dict[uuid.UUID, uuid.UUID] = {}
        self.user_roles: dict[tuple[uuid.UUID, uuid.UUID], set[uuid.UUID]] = {}
        self.role_grants: dict[uuid.UUID, tuple[uuid.UUID, set[str]]] = {}
        self.calls: list[str] = []

    # -- setup helpers -------------------------------------------------------

    def add_member(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        role: str,
        status: str = MembershipStatus.ACTIVE.value,
    ) -> OrganizationMembership:
        membership = OrganizationMembership(
            organization_id=org_id, user_id=user_id, role=role, status=status
        )
        self.memberships.append(membership)
        return membership

    def add_org(self, slug: str, org_id: Optional[uuid.UUID] = None) -> Organization:
        org = Organization(id=org_id or uuid.uuid4(), name=slug.title(), slug=slug, created_by=uuid.uuid4())
        self.organizations.append(org)
        return org

    def add_custom_role(self, org_id: uuid.UUID, grants: Iterable[str]) -> uuid.UUID:
        role_id = uuid.uuid4()
        self.role_grants[role_id] = (org_id, set(grants))
        return role_id

    def assign(self, user_id: uuid.UUID, org_id: uuid.UUID, role_id: uuid.UUID) -> None:
        self.user_roles.setdefault((user_id, org_id), set()).add(role_id)

    def unassign(self, user_id: uuid.UUID, org_id: uuid.UUID, role_id: uuid.UUID) -> None:
        self.user_roles.get((user_id, org_id), set()).discard(role_id)

    # -- MembershipStore -----------------------------------------------------

    async def get_active_membership(self, org_id, user_id):
        self.calls.append("get_active_membership")
        for m in self.memberships:
            if (
                m.organization_id == org_id
                and m.user_id == user_id
                and m.status == MembershipStatus.ACTIVE.value
            ):
                return m
        return None

    async def count_active_with_role(self, org_id, role):
        return sum(
            1
            for m in self.memberships
            if m.organization_id == org_id
            and m.role == role
            and m.status == MembershipStatus.ACTIVE.value
        )

    # -- OrganizationStore ---------------------------------------------------

    async def find_by_id_or_slug(self, identifier):
        self.calls.append("find_by_id_or_slug")
        for org in self.organizations:
            if str(org.id) == identifier or org.slug == identifier:
                return org
        return None

    async def find_by_slug(self, slug):
        self.calls.append("find_by_slug")
        for org in self.organizations:
            if org.slug == slug:
                return org
        return None

    # -- UserStore -----------------------------------------------------------

    async def get_last_active_org_id(self, user_id):
        self.calls.append("get_last_active_org_id")
        return self.last_active.get(user_id)

    # -- GrantStore ----------------------------------------------------------

    async def list_custom_role_ids(self, user_id, org_id):
        self.calls.append("list_custom_role_ids")
        return list(self.user_roles.get((user_id, org_id), set()))

    async def roles_grant_permission(self, role_ids, org_id, permission):
        return permission in await self.list_role_permissions(role_ids, org_id)

    async def list_role_permissions(self, role_ids, org_id):
        granted: set[str] = set()
        for role_id in role_ids:
            role_org, grants = self.role_grants.get(role_id, (None, set()))
            if role_org == org_id:
                granted |= grants
        return granted


class FakeSessionProvider:
    def __init__(self, session: Optional[Session] = None):
        self.session = session
        self.calls = 0

    async def get_session(self, headers):
        self.calls += 1
        return self.session


def make_session(user_id: Optional[uuid.UUID] = None, email: str = "ana@example.com") -> Session:
    return Session(user=SessionUser(id=user_id or uuid.uuid4(), email=email, name="Ana"))


def make_request(
    path: str = "/",
    host: str = "localhost:3000",
    headers: Optional[dict[str, str]] = None,
    method: str = "GET",
) -> Request:
    raw = [(b"host", host.encode("latin-1"))]
    for name, value in (headers or {}).items():
        raw.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": b"",
        "headers": raw,
        "scheme": "http",
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 12345),
    }
    return Request(scope)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


# ---------------------------------------------------------------------------
# SQLite-backed sessions
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def create_user(session: AsyncSession, email: Optional[str] = None) -> User:
    user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.com", name="Test User")
    session.add(user)
    await session.flush()
    return user


async def create_org(session: AsyncSession, owner: User, slug: Optional[str] = None) -> Organization:
    org = Organization(name="Acme", slug=slug or f"acme-{uuid.uuid4().hex[:6]}", created_by=owner.id)
    session.add(org)
    await session.flush()
    session.add(
        OrganizationMembership(
            organization_id=org.id, user_id=owner.id, role=SystemRole.OWNER.value
        )
    )
    await session.flush()
    return org


async def add_membership(
    session: AsyncSession,
    org: Organization,
    user: User,
    role: SystemRole,
    status: MembershipStatus = MembershipStatus.ACTIVE,
) -> OrganizationMembership:
    membership = OrganizationMembership(
        organization_id=org.id, user_id=user.id, role=role.value, status=status.value
    )
    session.add(membership)
    await session.flush()
    return membership
