"""Main router for API v1."""

from fastapi import APIRouter

from provisioner.api.v1 import config_status, deployments, health, templates

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(deployments.router, prefix="/deployments", tags=["deployments"])
router.include_router(config_status.router, prefix="/config", tags=["config"])
router.include_router(templates.router, prefix="/templates", tags=["templates"])
