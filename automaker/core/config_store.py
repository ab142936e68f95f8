"""Per-project deployment configuration store.

The configuration lives in ``<project>/.automaker/deployment.json``. Plain reads
never fail: a missing or unreadable document yields the default
configuration, and invalid fields fall back to their defaults. Deployments
use the strict read instead. Writes are atomic (temp file + rename).
"""

import asyncio
import contextlib
import json
import os
import time
from pathlib import Path

from pydantic import ValidationError

from automaker.config import settings
from automaker.core.exceptions import InvalidDeploymentConfigError
from automaker.models.deployment import DeploymentConfig
from automaker.utils.logging import get_logger

logger = get_logger("config_store")


def get_automaker_dir(project_path: str | Path) -> Path:
    """Directory holding Automaker's per-project state."""
    return Path(project_path) / settings.automaker_dir


def get_deployment_config_path(project_path: str | Path) -> Path:
    """Path of the deployment configuration document for a project."""
    return get_automaker_dir(project_path) / settings.deployment_config_file


def default_config() -> DeploymentConfig:
    """The configuration used when a project has none saved."""
    return DeploymentConfig()


def atomic_write_json(path: Path, data: object) -> None:
    """Write JSON to a temporary sibling file, then rename it over ``path``."""
    temp_path = path.with_name(f"{path.name}.tmp.{time.time_ns()}")
    content = json.dumps(data, indent=2)

    try:
        temp_path.write_text(content, encoding="utf-8")
        os.replace(temp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        raise


class ConfigStore:
    """Loads and saves deployment configurations.

    ``get_config`` is lenient and never fails: fields of a stored document
    that do not validate are dropped and fall back to their defaults.
    ``load_config`` is the strict read used before running a pipeline, so a
    broken document fails the deployment instead of running the defaults.
    """

    async def get_config(self, project_path: str | Path) -> DeploymentConfig:
        """Return the project's configuration, or the defaults."""
        return await asyncio.to_thread(self._read, get_deployment_config_path(project_path))

    async def load_config(self, project_path: str | Path) -> DeploymentConfig:
        """Return the project's configuration, failing on an unusable document.

        Raises:
            InvalidDeploymentConfigError: If the document exists but cannot be
                read, parsed or validated
        """
        return await asyncio.to_thread(self._load, get_deployment_config_path(project_path))

    async def has_config(self, project_path: str | Path) -> bool:
        """Check whether a configuration document exists and is readable."""
        path = get_deployment_config_path(project_path)
        return await asyncio.to_thread(
            lambda: path.is_file() and os.access(path, os.R_OK)
        )

    async def save_config(
        self, project_path: str | Path, config: DeploymentConfig
    ) -> None:
        """Persist a configuration atomically."""
        path = get_deployment_config_path(project_path)
        await asyncio.to_thread(self._write, path, config)
        logger.info("config_store.saved", project_path=str(project_path))

    def _read_document(self, path: Path) -> dict | None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise InvalidDeploymentConfigError(str(path), str(e)) from e

        if not isinstance(raw, dict):
            raise InvalidDeploymentConfigError(str(path), "expected a JSON object")
        return raw

    def _load(self, path: Path) -> DeploymentConfig:
        raw = self._read_document(path)
        if raw is None:
            return default_config()
        try:
            return DeploymentConfig.model_validate(raw)
        except ValidationError as e:
            raise InvalidDeploymentConfigError(str(path), describe_errors(e)) from e

    def _read(self, path: Path) -> DeploymentConfig:
        try:
            raw = self._read_document(path)
        except InvalidDeploymentConfigError as e:
            logger.error("config_store.read_failed", path=str(path), error=e.message)
            return default_config()
        if raw is None:
            return default_config()

        # Absent fields fall back to the model defaults
        try:
            return DeploymentConfig.model_validate(raw)
        except ValidationError as e:
            rejected = _rejected_keys(e)
            logger.error(
                "config_store.invalid_fields",
                path=str(path),
                fields=sorted(rejected),
                error=describe_errors(e),
            )
            kept = {key: value for key, value in raw.items() if key not in rejected}

        try:
            return DeploymentConfig.model_validate(kept)
        except ValidationError:
            return default_config()

    def _write(self, path: Path, config: DeploymentConfig) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_json(path, config.to_json_dict())


def describe_errors(error: ValidationError) -> str:
    """One line per problem, e.g. ``buildSteps.0.command: Field required``."""
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def _rejected_keys(error: ValidationError) -> set[str]:
    """Top-level document keys, under every accepted spelling, that failed validation."""
    failed = {str(item["loc"][0]) for item in error.errors() if item["loc"]}
    rejected = set(failed)
    for name, field in DeploymentConfig.model_fields.items():
        spellings = {name, field.alias or name}
        choices = getattr(field.validation_alias, "choices", None) or ()
        spellings.update(choice for choice in choices if isinstance(choice, str))
        if spellings & failed:
            rejected |= spellings
    return rejected


# Singleton instance
_config_store: ConfigStore | None = None


def get_config_store() -> ConfigStore:
    """Get the config store singleton."""
    global _config_store
    if _config_store is None:
        _config_store = ConfigStore()
    return _config_store
