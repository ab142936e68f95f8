"""Deployment endpoints: configuration, execution, status and events."""

import asyncio
import json
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status
from sse_starlette.sse import EventSourceResponse

from automaker.api.deps import ConfigStoreDep, EventsDep, OrchestratorDep
from automaker.core.exceptions import DeploymentConfigNotFoundError
from automaker.models.deployment import (
    CamelModel,
    DeploymentConfig,
    DeploymentEvent,
    DeploymentResult,
    DeploymentTrigger,
)
from automaker.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

# Seconds between keepalive comments on an idle event stream
STREAM_KEEPALIVE_S = 30.0

ProjectPathQuery = Annotated[str | None, Query(alias="projectPath")]


class ConfigResponse(CamelModel):
    """Deployment configuration of a project."""

    success: bool = True
    config: DeploymentConfig
    exists: bool


class SaveConfigRequest(CamelModel):
    """Request to save a project's deployment configuration."""

    project_path: str | None = None
    config: DeploymentConfig | None = None


class MessageResponse(CamelModel):
    """Generic acknowledgement."""

    success: bool = True
    message: str


class DeployRequest(CamelModel):
    """Request to start a deployment."""

    project_path: str | None = None
    feature_ids: list[str] | None = None
    trigger: DeploymentTrigger = "manual"


class DeployResponse(CamelModel):
    """Acknowledgement of a started deployment."""

    success: bool = True
    message: str = "Deployment started"
    deployment_id: str


class StatusResponse(CamelModel):
    """Current deployment status."""

    success: bool = True
    is_running: bool
    deployment: DeploymentResult | None = None


class HistoryResponse(CamelModel):
    """Recent deployments of a project."""

    success: bool = True
    history: list[DeploymentResult]


def _require_project_path(project_path: str | None) -> str:
    if not project_path:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="projectPath is required",
        )
    return project_path


@router.get(
    "/config",
    response_model=ConfigResponse,
    summary="Get deployment configuration",
)
async def get_config(
    store: ConfigStoreDep,
    project_path: ProjectPathQuery = None,
) -> ConfigResponse:
    """Return the project's configuration (or the defaults) and whether one is saved."""
    path = _require_project_path(project_path)
    config = await store.get_config(path)
    exists = await store.has_config(path)
    return ConfigResponse(config=config, exists=exists)


@router.post(
    "/config",
    response_model=MessageResponse,
    summary="Save deployment configuration",
)
async def save_config(data: SaveConfigRequest, store: ConfigStoreDep) -> MessageResponse:
    """Persist the project's deployment configuration."""
    path = _require_project_path(data.project_path)
    if data.config is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="config is required",
        )

    await store.save_config(path, data.config)
    return MessageResponse(message="Deployment config saved")


@router.post(
    "/deploy",
    response_model=DeployResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a deployment",
    description="Starts the pipeline in the background and returns the deployment id immediately.",
)
async def start_deployment(
    data: DeployRequest,
    store: ConfigStoreDep,
    orchestrator: OrchestratorDep,
    background_tasks: BackgroundTasks,
) -> DeployResponse:
    """Start a deployment for a configured project."""
    path = _require_project_path(data.project_path)

    if not await store.has_config(path):
        raise DeploymentConfigNotFoundError(path)
    # Raises InvalidDeploymentConfigError (422) for a document that does not validate
    await store.load_config(path)

    # Raises DeploymentInProgressError (409) without touching the running deployment
    run = orchestrator.start_deployment(path, data.trigger, data.feature_ids)
    background_tasks.add_task(orchestrator.run_deployment, run)

    return DeployResponse(deployment_id=run.deployment.id)


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Get current deployment status",
)
async def get_status(orchestrator: OrchestratorDep) -> StatusResponse:
    """Return whether a deployment is running and the current result."""
    return StatusResponse(
        is_running=orchestrator.is_deployment_running(),
        deployment=orchestrator.get_current_deployment(),
    )


@router.post(
    "/cancel",
    response_model=MessageResponse,
    summary="Cancel the running deployment",
)
async def cancel_deployment(orchestrator: OrchestratorDep) -> MessageResponse:
    """Cancel the deployment in flight."""
    if not await orchestrator.cancel_deployment():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No deployment is running",
        )
    return MessageResponse(message="Deployment cancelled")


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Get deployment history",
)
async def get_history(
    orchestrator: OrchestratorDep,
    project_path: ProjectPathQuery = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> HistoryResponse:
    """Return the project's recent deployments, newest first."""
    path = _require_project_path(project_path)
    history = await orchestrator.get_deployment_history(path, limit)
    return HistoryResponse(history=history)


@router.get(
    "/stream",
    summary="Stream deployment events (SSE)",
)
async def stream_deployment_events(
    events: EventsDep,
    orchestrator: OrchestratorDep,
) -> EventSourceResponse:
    """Stream deployment lifecycle events using Server-Sent Events."""

    async def event_generator():
        queue = events.subscribe()

        try:
            current = orchestrator.get_current_deployment()
            yield {
                "event": "connected",
                "data": json.dumps(
                    {
                        "isRunning": orchestrator.is_deployment_running(),
                        "deploymentId": current.id if current else None,
                    }
                ),
            }

            while True:
                try:
                    event: DeploymentEvent = await asyncio.wait_for(
                        queue.get(), timeout=STREAM_KEEPALIVE_S
                    )
                    yield {
                        "event": event.type.value,
                        "data": event.model_dump_json(by_alias=True, exclude_none=True),
                    }
                except asyncio.TimeoutError:
                    # Send keepalive
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(queue)
            logger.debug("deployment.stream.closed")

    return EventSourceResponse(event_generator())
