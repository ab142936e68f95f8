"""Append-only deployment history.

Each finished deployment is appended as one JSON line to
``<project>/.automaker/deployment-history.jsonl``.
"""

import asyncio
import json
from pathlib import Path

from pydantic import ValidationError

from automaker.config import settings
from automaker.core.config_store import get_automaker_dir
from automaker.models.deployment import DeploymentResult
from automaker.utils.logging import get_logger

logger = get_logger("history")


def get_history_path(project_path: str | Path) -> Path:
    """Path of the deployment history log for a project."""
    return get_automaker_dir(project_path) / settings.deployment_history_file


class DeploymentHistory:
    """Reads and appends finished deployment records."""

    async def append(self, project_path: str | Path, deployment: DeploymentResult) -> None:
        """Append a finished deployment to the project's log."""
        path = get_history_path(project_path)
        line = json.dumps(deployment.to_json_dict())
        await asyncio.to_thread(self._append_line, path, line)

    async def recent(self, project_path: str | Path, limit: int = 10) -> list[DeploymentResult]:
        """Return up to ``limit`` records, newest first."""
        if limit <= 0:
            return []
        path = get_history_path(project_path)
        return await asyncio.to_thread(self._read_tail, path, limit)

    def _append_line(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _read_tail(self, path: Path, limit: int) -> list[DeploymentResult]:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []

        records: list[DeploymentResult] = []
        for line in reversed(lines):
            if not line.strip():
                continue
            try:
                records.append(DeploymentResult.model_validate_json(line))
            except ValidationError as e:
                # A torn final line from a crash must not hide older records
                logger.warning("history.invalid_record", path=str(path), error=str(e))
                continue
            if len(records) >= limit:
                break
        return records
