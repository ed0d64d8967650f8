"""Deployment endpoints."""

from collections.abc import AsyncIterator
from typing import Annotated, Any

from fastapi import APIRouter, Query, status
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from provisioner.api.deps import (
    ChannelDep,
    DeploymentDep,
    LauncherDep,
    SettingsDep,
    StoreDep,
)
from provisioner.core.events import ProgressChannel
from provisioner.core.resolver import resolve
from provisioner.core.store import DeploymentStore
from provisioner.models.config import DeploymentRequest
from provisioner.models.deployment import DeploymentRecord, DeploymentStatus

router = APIRouter()


class SubmitResponse(BaseModel):
    """Returned as soon as a deployment has been accepted."""

    deployment_id: str
    status: str = "started"


class DeploymentListResponse(BaseModel):
    """Response for listing deployments."""

    deployments: list[DeploymentRecord]
    total: int
    limit: int
    offset: int


class CancelResponse(BaseModel):
    deployment_id: str
    status: DeploymentStatus


async def deployment_event_stream(
    deployment_id: str,
    store: DeploymentStore,
    channel: ProgressChannel,
    keepalive_seconds: float,
) -> AsyncIterator[dict[str, Any]]:
    """Server-sent events for one deployment.

    Emits the current record as ``snapshot``, then one ``progress`` event per
    transition, ``keepalive`` whenever nothing happened for
    ``keepalive_seconds``, and ``end`` once the deployment is terminal.
    """
    # Subscribe before reading the snapshot so no transition falls in between
    async with channel.subscribe(deployment_id) as subscription:
        record = await store.get(deployment_id)
        yield {"event": "snapshot", "data": record.model_dump_json()}

        if record.status.is_terminal:
            yield {"event": "end", "data": record.status.value}
            return

        while True:
            event = await subscription.get(timeout=keepalive_seconds)
            if event is None:
                yield {"event": "keepalive", "data": ""}
                continue

            yield {"event": "progress", "data": event.to_line()}
            if event.is_terminal:
                yield {"event": "end", "data": event.status}
                return


@router.post(
    "",
    response_model=SubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a deployment",
    description="Validate the request and start provisioning in the background.",
)
async def submit_deployment(
    data: DeploymentRequest,
    launcher: LauncherDep,
    settings: SettingsDep,
) -> SubmitResponse:
    """Resolve credentials, create the record, and start the orchestrator."""
    # MissingConfigurationError renders as 422 with every problem listed
    config = resolve(data, settings)
    record = await launcher.submit(config)
    return SubmitResponse(deployment_id=record.deployment_id)


@router.get(
    "",
    response_model=DeploymentListResponse,
    summary="List deployments",
)
async def list_deployments(
    store: StoreDep,
    status_filter: Annotated[DeploymentStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeploymentListResponse:
    deployments, total = await store.list_deployments(
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    return DeploymentListResponse(
        deployments=deployments,
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{deployment_id}",
    response_model=DeploymentRecord,
    summary="Get deployment details",
)
async def get_deployment(deployment: DeploymentDep) -> DeploymentRecord:
    return deployment


@router.get(
    "/{deployment_id}/stream",
    summary="Stream deployment progress (SSE)",
)
async def stream_deployment(
    deployment: DeploymentDep,
    store: StoreDep,
    channel: ChannelDep,
    settings: SettingsDep,
) -> EventSourceResponse:
    """Stream step transitions until the deployment finishes."""
    return EventSourceResponse(
        deployment_event_stream(
            deployment.deployment_id,
            store,
            channel,
            settings.stream_keepalive_seconds,
        )
    )


@router.post(
    "/{deployment_id}/cancel",
    response_model=CancelResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel a running deployment",
)
async def cancel_deployment(
    deployment: DeploymentDep,
    launcher: LauncherDep,
    store: StoreDep,
) -> CancelResponse:
    """Stop the deployment's task; the running step is marked as errored."""
    await launcher.cancel(deployment.deployment_id)
    record = await store.get(deployment.deployment_id)
    return CancelResponse(deployment_id=record.deployment_id, status=record.status)
