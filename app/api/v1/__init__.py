"""
API v1 Router

Org-scoped endpoints are prefixed with /organizations/{organization_id}.
"""

from fastapi import APIRouter
from . import auth, invitations, prolific, tasks, videos
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

# Organization routes (non-org-scoped: list, create)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: get, delete, members, invitations, leave)
router.include_router(
    orgs_scoped_router, prefix="/organizations/{organization_id}", tags=["Organizations"]
)

router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])
router.include_router(prolific.router, prefix="/prolific", tags=["Prolific"])
router.include_router(
    tasks.router, prefix="/two-video-comparison-tasks", tags=["Evaluation Tasks"]
)
router.include_router(videos.router, tags=["Videos"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/auth/csrf",
            "/organizations",
            "/organizations/{organization_id}/members",
            "/organizations/{organization_id}/invitations",
            "/invitations/accept",
            "/prolific/studies",
            "/prolific/sync",
            "/two-video-comparison-tasks",
            "/video/{path}",
            "/video-library",
        ],
    }
