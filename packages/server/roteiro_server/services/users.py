"""
User service: keeps the local user mirror in step with the external auth provider.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from roteiro_server.core.auth import SessionUser
from roteiro_server.models.user import User

log = structlog.get_logger()


async def get_user(user_id: uuid.UUID, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def ensure_user(identity: SessionUser, session: AsyncSession) -> User:
    """Return the local row for ``identity``, creating or refreshing it as needed."""
    user = await get_user(identity.id, session)
    if user is None:
        user = User(
            id=identity.id,
            email=identity.email.lower(),
            name=identity.name,
            email_verified=identity.email_verified,
        )
        session.add(user)
        await session.flush()
        log.info("user.mirrored", user_id=str(identity.id))
        return user

    changed = False
    if identity.email and user.email != identity.email.lower():
        user.email = identity.email.lower()
        changed = True
    if identity.name and user.name != identity.name:
        user.name = identity.name
        changed = True
    if user.email_verified != identity.email_verified:
        user.email_verified = identity.email_verified
        changed = True
    if changed:
        session.add(user)
        await session.flush()
    return user


async def set_last_active_org(
    user_id: uuid.UUID, org_id: Optional[uuid.UUID], session: AsyncSession
) -> None:
    user = await get_user(user_id, session)
    if user is None:
        return
    user.last_active_org_id = org_id
    session.add(user)
    await session.flush()
