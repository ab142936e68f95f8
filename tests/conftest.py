"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from automaker.core.config_store import ConfigStore
from automaker.core.orchestrator import get_orchestrator
from automaker.main import app
from automaker.models.deployment import DeploymentEvent, DeploymentEventType


class RecordingSink:
    """Event sink that keeps every published event."""

    def __init__(self):
        self.events: list[DeploymentEvent] = []

    async def publish(self, event: DeploymentEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[DeploymentEventType]:
        return [event.type for event in self.events]

    def of_type(self, event_type: DeploymentEventType) -> list[DeploymentEvent]:
        return [event for event in self.events if event.type == event_type]


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """An empty project root."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def store() -> ConfigStore:
    """A config store instance."""
    return ConfigStore()


@pytest.fixture
def sink() -> RecordingSink:
    """An event sink recording everything it receives."""
    return RecordingSink()


def _reset_orchestrator() -> None:
    orchestrator = get_orchestrator()
    orchestrator.slot.clear()
    orchestrator._run = None


@pytest.fixture
async def client() -> AsyncClient:
    """Create an async test client with an idle orchestrator."""
    _reset_orchestrator()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup after test
    _reset_orchestrator()
