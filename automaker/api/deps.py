"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends

from automaker.core.config_store import ConfigStore, get_config_store
from automaker.core.events import EventBus, get_event_bus
from automaker.core.orchestrator import DeploymentOrchestrator, get_orchestrator


async def get_store() -> ConfigStore:
    """Get the deployment config store."""
    return get_config_store()


async def get_events() -> EventBus:
    """Get the event bus."""
    return get_event_bus()


async def get_deployments() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


# Type aliases for cleaner signatures
ConfigStoreDep = Annotated[ConfigStore, Depends(get_store)]
EventsDep = Annotated[EventBus, Depends(get_events)]
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployments)]
