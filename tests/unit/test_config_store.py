"""Unit tests for the deployment configuration store."""

import json
import os
from pathlib import Path

import pytest

from automaker.core.config_store import (
    ConfigStore,
    atomic_write_json,
    default_config,
    get_deployment_config_path,
)
from automaker.core.exceptions import InvalidDeploymentConfigError
from automaker.models.deployment import DeploymentConfig, DeploymentStep, E2ETestConfig


def write_document(project_dir: Path, document: dict) -> None:
    path = get_deployment_config_path(project_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document))


class TestConfigStore:
    """Tests for ConfigStore."""

    @pytest.mark.asyncio
    async def test_missing_config_returns_defaults(self, store: ConfigStore, project_dir: Path):
        """Test a project without a saved config."""
        config = await store.get_config(project_dir)

        assert config == default_config()
        assert await store.has_config(project_dir) is False

    @pytest.mark.asyncio
    async def test_round_trip_empty_steps(self, store: ConfigStore, project_dir: Path):
        """Test saving and loading a config with empty step lists."""
        config = DeploymentConfig(auto_deploy_on_complete=True)

        await store.save_config(project_dir, config)

        assert await store.has_config(project_dir) is True
        assert await store.get_config(project_dir) == config

    @pytest.mark.asyncio
    async def test_round_trip_full_config(self, store: ConfigStore, project_dir: Path):
        """Test every field survives a save/load cycle."""
        config = DeploymentConfig(
            build_steps=[
                DeploymentStep(
                    name="Install",
                    command="npm ci",
                    working_directory="web",
                    env={"CI": "1"},
                    timeout_ms=1000,
                    continue_on_error=True,
                )
            ],
            deploy_steps=[DeploymentStep(name="Start", command="docker compose up -d")],
            e2e_tests=E2ETestConfig(
                command="npm run test:e2e",
                wait_for_url="http://localhost:3000",
                wait_timeout_ms=5000,
            ),
            health_check_url="http://localhost:8080/health",
            health_check_timeout_ms=120000,
        )

        await store.save_config(project_dir, config)

        assert await store.get_config(project_dir) == config

    @pytest.mark.asyncio
    async def test_written_document_format(self, store: ConfigStore, project_dir: Path):
        """Test the file is indented JSON with camelCase keys."""
        await store.save_config(
            project_dir,
            DeploymentConfig(deploy_steps=[DeploymentStep(name="Start", command="npm start")]),
        )

        path = get_deployment_config_path(project_dir)
        content = path.read_text()

        assert path == project_dir / ".automaker" / "deployment.json"
        assert '\n  "deploySteps": [' in content
        assert json.loads(content)["deploySteps"][0]["name"] == "Start"

    @pytest.mark.asyncio
    async def test_partial_document_merged_over_defaults(
        self, store: ConfigStore, project_dir: Path
    ):
        """Test missing fields are filled from the defaults."""
        path = get_deployment_config_path(project_dir)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"healthCheckUrl": "http://localhost:3000"}))

        config = await store.get_config(project_dir)

        assert config.health_check_url == "http://localhost:3000"
        assert config.version == 1
        assert config.build_steps == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", '{"buildSteps": "nope"}'])
    async def test_unreadable_document_returns_defaults(
        self, store: ConfigStore, project_dir: Path, content: str
    ):
        """Test corrupt documents never raise."""
        path = get_deployment_config_path(project_dir)
        path.parent.mkdir(parents=True)
        path.write_text(content)

        assert await store.get_config(project_dir) == default_config()

    @pytest.mark.asyncio
    async def test_numeric_env_values_are_stringified(
        self, store: ConfigStore, project_dir: Path
    ):
        """Test hand-written env values that are numbers or booleans are kept."""
        write_document(
            project_dir,
            {
                "buildSteps": [
                    {"name": "build", "command": "npm run build", "env": {"PORT": 3000, "CI": True}}
                ],
                "e2eTests": {"command": "npx playwright test", "env": {"WORKERS": 2}},
            },
        )

        config = await store.get_config(project_dir)

        assert config.build_steps[0].env == {"PORT": "3000", "CI": "true"}
        assert config.e2e_tests.env == {"WORKERS": "2"}

    @pytest.mark.asyncio
    async def test_invalid_field_keeps_valid_fields(self, store: ConfigStore, project_dir: Path):
        """Test only the offending field falls back to its default."""
        write_document(
            project_dir,
            {
                "buildSteps": [{"name": "missing command"}],
                "deploySteps": [{"name": "Up", "command": "docker compose up -d"}],
                "healthCheckUrl": "http://localhost:3000",
            },
        )

        config = await store.get_config(project_dir)

        assert config.build_steps == []
        assert [s.name for s in config.deploy_steps] == ["Up"]
        assert config.health_check_url == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_invalid_legacy_key_is_dropped(self, store: ConfigStore, project_dir: Path):
        write_document(
            project_dir,
            {"healthCheckTimeout": "soon", "healthCheckUrl": "http://localhost:3000"},
        )

        config = await store.get_config(project_dir)

        assert config.health_check_timeout_ms == 30_000
        assert config.health_check_url == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_failed_save_keeps_previous_config(
        self, store: ConfigStore, project_dir: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """Test a failing rename leaves the old file intact and no temp file behind."""
        original = DeploymentConfig(health_check_url="http://localhost:1")
        await store.save_config(project_dir, original)

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)

        with pytest.raises(OSError, match="disk full"):
            await store.save_config(project_dir, DeploymentConfig(health_check_url="http://x"))

        monkeypatch.undo()
        assert await store.get_config(project_dir) == original
        leftovers = [
            p.name for p in (project_dir / ".automaker").iterdir() if ".tmp." in p.name
        ]
        assert leftovers == []


class TestLoadConfig:
    """Tests for the strict read used before a deployment runs."""

    @pytest.mark.asyncio
    async def test_missing_config_returns_defaults(self, store: ConfigStore, project_dir: Path):
        assert await store.load_config(project_dir) == default_config()

    @pytest.mark.asyncio
    async def test_valid_document(self, store: ConfigStore, project_dir: Path):
        write_document(project_dir, {"buildSteps": [{"name": "b", "command": "make"}]})

        config = await store.load_config(project_dir)

        assert config.build_steps[0].command == "make"

    @pytest.mark.asyncio
    async def test_invalid_document_raises(self, store: ConfigStore, project_dir: Path):
        write_document(project_dir, {"buildSteps": [{"name": "missing command"}]})

        with pytest.raises(InvalidDeploymentConfigError) as exc_info:
            await store.load_config(project_dir)

        assert "buildSteps.0.command" in exc_info.value.message
        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
    async def test_unparseable_document_raises(
        self, store: ConfigStore, project_dir: Path, content: str
    ):
        path = get_deployment_config_path(project_dir)
        path.parent.mkdir(parents=True)
        path.write_text(content)

        with pytest.raises(InvalidDeploymentConfigError):
            await store.load_config(project_dir)


class TestAtomicWrite:
    """Tests for the atomic JSON writer."""

    def test_replaces_existing_file(self, tmp_path: Path):
        target = tmp_path / "data.json"
        target.write_text('{"old": true}')

        atomic_write_json(target, {"new": True})

        assert json.loads(target.read_text()) == {"new": True}
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]
