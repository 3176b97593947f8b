"""
API v1 Router

Global routes live under /api/v1. Tenant-scoped routers are listed in
``tenant_routers``, each mounted at /api/v1/org and at /o/{orgRef}/api/v1/org; the
organization is always taken from the tenant resolver, never from the body.
"""

from fastapi import APIRouter

from . import invitations, members, organizations, roles, session

router = APIRouter()

router.include_router(organizations.router_global)
router.include_router(invitations.router_global)
router.include_router(session.router, prefix="/session")

# Mounted once per tenant base path by create_app
tenant_routers = (
    organizations.router_scoped,
    members.router,
    invitations.router_scoped,
    roles.router,
)


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/switch",
            "/session/post-signin",
            "/invitations/{token}/accept",
            "/org",
            "/org/members",
            "/org/invitations",
            "/org/roles",
            "/org/permissions",
        ],
    }
