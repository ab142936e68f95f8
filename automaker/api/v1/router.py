"""Main router for API v1."""

from fastapi import APIRouter

from automaker.api.v1 import deployment, health

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(deployment.router, prefix="/deployment", tags=["deployment"])
