"""
Custom roles and the permission catalog (org-scoped).

GET    /api/v1/org/permissions                             - Catalog and default role grants
GET    /api/v1/org/roles                                   - List custom roles
POST   /api/v1/org/roles                                   - Create a custom role
DELETE /api/v1/org/roles/{role_id}                         - Delete a custom role
POST   /api/v1/org/roles/{role_id}/assignments             - Assign to a member
DELETE /api/v1/org/roles/{role_id}/assignments/{user_id}   - Unassign
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roteiro_server.core.database import get_session
from roteiro_server.core.deps import require_member, require_permission
from roteiro_server.core.guard import AuthorizedContext
from roteiro_server.core.rbac import PERMISSION_KEYS, ROLE_PERMISSIONS
from roteiro_server.services import roles as role_service
from roteiro_shared.schemas.roles import (
    CustomRoleCreateRequest,
    CustomRoleListResponse,
    CustomRoleResponse,
    PermissionCatalogResponse,
    RoleAssignmentRequest,
    RoleAssignmentResponse,
)

router = APIRouter()

require_tenant_manage = require_permission("tenant:manage")


@router.get("/permissions", response_model=PermissionCatalogResponse, tags=["Roles"])
async def get_permission_catalog(
    access: AuthorizedContext = Depends(require_member),
):
    return PermissionCatalogResponse(
        permissions=list(PERMISSION_KEYS),
        role_permissions={
            role.value: sorted(keys) for role, keys in ROLE_PERMISSIONS.items()
        },
    )


@router.get("/roles", response_model=CustomRoleListResponse, tags=["Roles"])
async def list_roles(
    access: AuthorizedContext = Depends(require_tenant_manage),
    session: AsyncSession = Depends(get_session),
):
    items = await role_service.list_roles(access.org_id, session)
    return CustomRoleListResponse(data=[CustomRoleResponse(**item) for item in items])


@router.post("/roles", response_model=CustomRoleResponse, status_code=201, tags=["Roles"])
async def create_role(
    body: CustomRoleCreateRequest,
    access: AuthorizedContext = Depends(require_tenant_manage),
    session: AsyncSession = Depends(get_session),
):
    """Create a custom role whose grants add to members' system-role permissions."""
    info = await role_service.create_role(access.org_id, body, session)
    return CustomRoleResponse(**info)


@router.delete("/roles/{role_id}", status_code=204, tags=["Roles"])
async def delete_role(
    role_id: uuid.UUID,
    access: AuthorizedContext = Depends(require_tenant_manage),
    session: AsyncSession = Depends(get_session),
):
    await role_service.delete_role(access.org_id, role_id, session)


@router.post(
    "/roles/{role_id}/assignments",
    response_model=RoleAssignmentResponse,
    status_code=201,
    tags=["Roles"],
)
async def assign_role(
    role_id: uuid.UUID,
    body: RoleAssignmentRequest,
    access: AuthorizedContext = Depends(require_tenant_manage),
    session: AsyncSession = Depends(get_session),
):
    assignment = await role_service.assign_role(
        access.org_id, role_id, body.user_id, access.user_id, session
    )
    return RoleAssignmentResponse(
        role_id=assignment.role_id,
        user_id=assignment.user_id,
        organization_id=assignment.organization_id,
    )


@router.delete("/roles/{role_id}/assignments/{user_id}", status_code=204, tags=["Roles"])
async def unassign_role(
    role_id: uuid.UUID,
    user_id: uuid.UUID,
    access: AuthorizedContext = Depends(require_tenant_manage),
    session: AsyncSession = Depends(get_session),
):
    await role_service.unassign_role(access.org_id, role_id, user_id, session)
