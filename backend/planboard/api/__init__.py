"""API router package."""

from fastapi import APIRouter

from planboard.api.v1 import health, ops, projects

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(ops.router, tags=["Operations"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
