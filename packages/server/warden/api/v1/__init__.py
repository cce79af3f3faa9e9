"""
API v1 Router

Project-scoped endpoints live under /projects/{project_id}; organization
endpoints under /orgs.
"""

from fastapi import APIRouter

from . import invitations, members, organizations, permissions, projects, roles

router = APIRouter()

router.include_router(permissions.router, tags=["Permissions"])
router.include_router(organizations.router, prefix="/orgs", tags=["Organizations"])
router.include_router(projects.router, tags=["Projects"])
router.include_router(roles.router, prefix="/projects/{project_id}/roles", tags=["Roles"])
router.include_router(members.router, prefix="/projects/{project_id}/members", tags=["Members"])
router.include_router(invitations.router, tags=["Invitations"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/permissions",
            "/orgs",
            "/orgs/{org_id}/projects",
            "/projects/{project_id}/roles",
            "/projects/{project_id}/members",
            "/projects/{project_id}/invitations",
            "/invitations/accept",
        ],
    }
