"""Provider credential status endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel

from provisioner.api.deps import SettingsDep
from provisioner.core.resolver import ProviderStatus, provider_statuses

router = APIRouter()


class StatusSummary(BaseModel):
    total: int
    configured: int
    required: int
    required_configured: int
    missing_required: list[str]
    missing_optional: list[str]


class ConfigStatusResponse(BaseModel):
    """Which providers are configured, and which environment keys each needs."""

    services: list[ProviderStatus]
    has_minimum_config: bool
    summary: StatusSummary


@router.get("/status", response_model=ConfigStatusResponse, summary="Provider setup status")
async def config_status(settings: SettingsDep) -> ConfigStatusResponse:
    services = provider_statuses(settings)
    missing_required = [s.name for s in services if s.required and not s.configured]
    return ConfigStatusResponse(
        services=services,
        has_minimum_config=not missing_required,
        summary=StatusSummary(
            total=len(services),
            configured=sum(1 for s in services if s.configured),
            required=sum(1 for s in services if s.required),
            required_configured=sum(1 for s in services if s.required and s.configured),
            missing_required=missing_required,
            missing_optional=[s.name for s in services if not s.required and not s.configured],
        ),
    )
