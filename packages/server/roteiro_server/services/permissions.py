"""
Permission catalog persistence: keeps the ``permissions`` table in step with ``PERMISSION_KEYS``.
"""

from __future__ import annotations

from typing import Iterable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from roteiro_server.core.rbac import PERMISSION_DESCRIPTIONS, PERMISSION_KEYS
from roteiro_server.models.role import Permission

log = structlog.get_logger()


async def seed_permissions(session: AsyncSession) -> tuple[int, int]:
    """Insert missing catalog keys. Returns ``(created, skipped)``."""
    result = await session.execute(select(Permission.name))
    existing = set(result.scalars().all())

    created = 0
    for key in PERMISSION_KEYS:
        if key in existing:
            continue
        resource, action = key.split(":", 1)
        session.add(
            Permission(
                name=key,
                resource=resource,
                action=action,
                description=PERMISSION_DESCRIPTIONS.get(key),
            )
        )
        created += 1
    await session.flush()

    skipped = len(PERMISSION_KEYS) - created
    log.info("permissions.seeded", created=created, skipped=skipped)
    return created, skipped


async def get_permissions_by_name(
    names: Iterable[str], session: AsyncSession
) -> dict[str, Permission]:
    """Catalog rows for ``names``, seeding the catalog first if any are missing."""
    wanted = set(names)
    if not wanted:
        return {}

    result = await session.execute(select(Permission).where(Permission.name.in_(wanted)))
    rows = {p.name: p for p in result.scalars().all()}
    if len(rows) < len(wanted):
        await seed_permissions(session)
        result = await session.execute(select(Permission).where(Permission.name.in_(wanted)))
        rows = {p.name: p for p in result.scalars().all()}
    return rows
