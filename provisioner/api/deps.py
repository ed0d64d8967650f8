"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends

from provisioner.config import Settings, get_settings
from provisioner.core.events import ProgressChannel, get_progress_channel
from provisioner.core.launcher import DeploymentLauncher, get_launcher
from provisioner.core.store import DeploymentStore, get_deployment_store
from provisioner.core.templates import TemplateCatalogue, get_template_catalogue
from provisioner.models.deployment import DeploymentRecord


async def get_store() -> DeploymentStore:
    """Get the deployment store."""
    return get_deployment_store()


async def get_channel() -> ProgressChannel:
    """Get the progress channel."""
    return get_progress_channel()


async def get_deployment_launcher() -> DeploymentLauncher:
    """Get the deployment launcher."""
    return get_launcher()


async def get_app_settings() -> Settings:
    return get_settings()


async def get_catalogue() -> TemplateCatalogue:
    return get_template_catalogue()


async def get_deployment_by_id(
    deployment_id: str,
    store: Annotated[DeploymentStore, Depends(get_store)],
) -> DeploymentRecord:
    """Get a deployment by ID; unknown ids raise DeploymentNotFoundError (404)."""
    return await store.get(deployment_id)


# Type aliases for cleaner signatures
StoreDep = Annotated[DeploymentStore, Depends(get_store)]
ChannelDep = Annotated[ProgressChannel, Depends(get_channel)]
LauncherDep = Annotated[DeploymentLauncher, Depends(get_deployment_launcher)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
CatalogueDep = Annotated[TemplateCatalogue, Depends(get_catalogue)]
DeploymentDep = Annotated[DeploymentRecord, Depends(get_deployment_by_id)]
