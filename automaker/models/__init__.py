"""Data models for Automaker."""

from automaker.models.deployment import (
    DEFAULT_E2E_TIMEOUT_MS,
    DEFAULT_E2E_WAIT_TIMEOUT_MS,
    DEFAULT_HEALTH_CHECK_TIMEOUT_MS,
    DEFAULT_STEP_TIMEOUT_MS,
    DeploymentConfig,
    DeploymentEvent,
    DeploymentEventData,
    DeploymentEventType,
    DeploymentResult,
    DeploymentStatus,
    DeploymentStep,
    DeploymentTrigger,
    E2EStatus,
    E2ETestConfig,
    E2ETestResult,
    StepResult,
    StepStatus,
)

__all__ = [
    # Defaults
    "DEFAULT_E2E_TIMEOUT_MS",
    "DEFAULT_E2E_WAIT_TIMEOUT_MS",
    "DEFAULT_HEALTH_CHECK_TIMEOUT_MS",
    "DEFAULT_STEP_TIMEOUT_MS",
    # Configuration models
    "DeploymentConfig",
    "DeploymentStep",
    "E2ETestConfig",
    # Result models
    "DeploymentResult",
    "DeploymentStatus",
    "DeploymentTrigger",
    "E2EStatus",
    "E2ETestResult",
    "StepResult",
    "StepStatus",
    # Event models
    "DeploymentEvent",
    "DeploymentEventData",
    "DeploymentEventType",
]
