"""Liveness and readiness."""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from provisioner import __version__
from provisioner.api.deps import LauncherDep, SettingsDep
from provisioner.core.resolver import provider_statuses
from provisioner.models.deployment import utcnow

router = APIRouter()


class HealthResponse(BaseModel):
    """``degraded`` means the service is up but cannot accept deployments yet."""

    status: Literal["healthy", "degraded"]
    version: str
    environment: str
    running_deployments: int
    missing_required_providers: list[str]
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsDep, launcher: LauncherDep) -> HealthResponse:
    missing = [s.provider for s in provider_statuses(settings) if s.required and not s.configured]
    return HealthResponse(
        status="degraded" if missing else "healthy",
        version=__version__,
        environment=settings.app_env,
        running_deployments=len(launcher.running),
        missing_required_providers=missing,
        timestamp=utcnow(),
    )
