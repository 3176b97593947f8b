"""
Custom role service.

Custom roles belong to one organization and only ever add permission keys to
a member's system-role set. Every lookup here is scoped by ``org_id`` so a
role id from another organization behaves as if it did not exist.
"""

from __future__ import annotations

import uuid
from collections import defaultdict

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from roteiro_server.core.errors import Conflict, InvalidRequest, NotFound
from roteiro_server.core.rbac import is_known_permission
from roteiro_server.models.membership import OrganizationMembership
from roteiro_server.models.role import Permission, Role, RolePermission, UserRole
from roteiro_server.services.permissions import get_permissions_by_name
from roteiro_shared.schemas.common import MembershipStatus
from roteiro_shared.schemas.roles import CustomRoleCreateRequest

log = structlog.get_logger()


def role_info(role: Role, permissions: list[str]) -> dict:
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "permissions": sorted(permissions),
        "created_at": role.created_at,
    }


async def _role_grants(role_ids: list[uuid.UUID], session: AsyncSession) -> dict[uuid.UUID, list[str]]:
    grants: dict[uuid.UUID, list[str]] = defaultdict(list)
    if not role_ids:
        return grants
    result = await session.execute(
        select(RolePermission.role_id, Permission.name)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .where(RolePermission.role_id.in_(role_ids))
    )
    for role_id, name in result.all():
        grants[role_id].append(name)
    return grants


async def list_roles(org_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(Role).where(Role.organization_id == org_id).order_by(Role.name)
    )
    roles = list(result.scalars().all())
    grants = await _role_grants([r.id for r in roles], session)
    return [role_info(role, grants.get(role.id, [])) for role in roles]


async def get_role(org_id: uuid.UUID, role_id: uuid.UUID, session: AsyncSession) -> Role:
    result = await session.execute(
        select(Role).where(Role.id == role_id, Role.organization_id == org_id)
    )
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFound("Role not found")
    return role


async def create_role(
    org_id: uuid.UUID,
    req: CustomRoleCreateRequest,
    session: AsyncSession,
) -> dict:
    keys = sorted(set(req.permissions))
    unknown = [k for k in keys if not is_known_permission(k)]
    if unknown:
        raise InvalidRequest(f"Unknown permission keys: {', '.join(unknown)}")

    existing = await session.execute(
        select(Role.id).where(Role.organization_id == org_id, Role.name == req.name)
    )
    if existing.first() is not None:
        raise Conflict("A role with this name already exists")

    role = Role(organization_id=org_id, name=req.name, description=req.description)
    session.add(role)
    await session.flush()

    catalog = await get_permissions_by_name(keys, session)
    for key in keys:
        session.add(RolePermission(role_id=role.id, permission_id=catalog[key].id))
    await session.flush()

    log.info("role.created", org_id=str(org_id), role_id=str(role.id), permissions=keys)
    return role_info(role, keys)


async def delete_role(org_id: uuid.UUID, role_id: uuid.UUID, session: AsyncSession) -> None:
    role = await get_role(org_id, role_id, session)
    if role.is_system:
        raise InvalidRequest("System roles cannot be deleted")

    # Remove dependents explicitly; backends without FK enforcement skip the cascade
    assignments = await session.execute(
        select(UserRole).where(UserRole.role_id == role.id, UserRole.organization_id == org_id)
    )
    for assignment in assignments.scalars().all():
        await session.delete(assignment)
    grants = await session.execute(select(RolePermission).where(RolePermission.role_id == role.id))
    for grant in grants.scalars().all():
        await session.delete(grant)
    await session.delete(role)
    await session.flush()

    log.info("role.deleted", org_id=str(org_id), role_id=str(role_id))


async def assign_role(
    org_id: uuid.UUID,
    role_id: uuid.UUID,
    user_id: uuid.UUID,
    assigned_by: uuid.UUID,
    session: AsyncSession,
) -> UserRole:
    role = await get_role(org_id, role_id, session)

    membership = await session.execute(
        select(OrganizationMembership.id).where(
            OrganizationMembership.organization_id == org_id,
            OrganizationMembership.user_id == user_id,
            OrganizationMembership.status == MembershipStatus.ACTIVE.value,
        )
    )
    if membership.first() is None:
        raise NotFound("Member not found")

    result = await session.execute(
        select(UserRole).where(
            UserRole.user_id == user_id,
            UserRole.role_id == role.id,
            UserRole.organization_id == org_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is not None:
        return assignment

    assignment = UserRole(
        user_id=user_id,
        role_id=role.id,
        organization_id=org_id,
        assigned_by=assigned_by,
    )
    session.add(assignment)
    await session.flush()

    log.info("role.assigned", org_id=str(org_id), role_id=str(role_id), user_id=str(user_id))
    return assignment


async def unassign_role(
    org_id: uuid.UUID,
    role_id: uuid.UUID,
    user_id: uuid.UUID,
    session: AsyncSession,
) -> None:
    result = await session.execute(
        select(UserRole).where(
            UserRole.user_id == user_id,
            UserRole.role_id == role_id,
            UserRole.organization_id == org_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFound("Role assignment not found")

    await session.delete(assignment)
    await session.flush()
    log.info("role.unassigned", org_id=str(org_id), role_id=str(role_id), user_id=str(user_id))
