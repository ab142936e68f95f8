"""Core deployment pipeline for Automaker."""

from automaker.core.config_store import ConfigStore, get_config_store
from automaker.core.events import EventBus, EventSink, NullEventSink, get_event_bus
from automaker.core.exceptions import (
    AutomakerError,
    DeploymentCancelledError,
    DeploymentConfigNotFoundError,
    DeploymentError,
    DeploymentInProgressError,
    InvalidDeploymentConfigError,
)
from automaker.core.executor import CommandResult, StepExecutor
from automaker.core.health import HealthProbe
from automaker.core.history import DeploymentHistory
from automaker.core.orchestrator import (
    DeploymentOrchestrator,
    DeploymentRun,
    get_orchestrator,
)
from automaker.core.state import DeploymentSlot

__all__ = [
    "AutomakerError",
    "DeploymentCancelledError",
    "DeploymentConfigNotFoundError",
    "DeploymentError",
    "DeploymentInProgressError",
    "InvalidDeploymentConfigError",
    "CommandResult",
    "ConfigStore",
    "get_config_store",
    "DeploymentHistory",
    "DeploymentOrchestrator",
    "DeploymentRun",
    "DeploymentSlot",
    "EventBus",
    "EventSink",
    "NullEventSink",
    "get_event_bus",
    "HealthProbe",
    "StepExecutor",
    "get_orchestrator",
]
