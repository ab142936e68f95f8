"""Service liveness endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from automaker import __version__
from automaker.api.deps import OrchestratorDep
from automaker.config import settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness of the API plus a glance at the deployment slot."""

    status: str = "healthy"
    version: str
    environment: str
    timestamp: datetime
    deployment_running: bool
    current_deployment_id: str | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(orchestrator: OrchestratorDep) -> HealthResponse:
    """Report that the API is up and whether a deployment is in flight."""
    current = orchestrator.get_current_deployment()
    return HealthResponse(
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        deployment_running=orchestrator.is_deployment_running(),
        current_deployment_id=current.id if current else None,
    )
