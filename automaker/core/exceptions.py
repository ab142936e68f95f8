"""Custom exceptions for Automaker."""

from typing import Any


class AutomakerError(Exception):
    """Base exception for Automaker."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DeploymentConfigNotFoundError(AutomakerError):
    """No deployment configuration has been saved for the project."""

    status_code = 400

    def __init__(self, project_path: str):
        super().__init__(
            "No deployment configuration found. Please configure deployment first.",
            {"project_path": project_path},
        )


class DeploymentInProgressError(AutomakerError):
    """A deployment is already running in this process."""

    status_code = 409

    def __init__(self, deployment_id: str | None = None):
        details = {}
        if deployment_id:
            details["deployment_id"] = deployment_id
        super().__init__("A deployment is already in progress", details)


class DeploymentError(AutomakerError):
    """A pipeline phase failed and the deployment was aborted."""

    def __init__(self, message: str, phase: str):
        super().__init__(message, {"phase": phase})
        self.phase = phase


class DeploymentCancelledError(AutomakerError):
    """The deployment was cancelled while a phase was running."""

    def __init__(self, deployment_id: str):
        super().__init__(
            "Deployment cancelled by user",
            {"deployment_id": deployment_id},
        )


class InvalidDeploymentConfigError(AutomakerError):
    """The stored deployment configuration exists but cannot be used."""

    status_code = 422

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Invalid deployment configuration: {reason}",
            {"path": path},
        )
