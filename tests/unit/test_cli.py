"""Tests for the automaker-deploy command line."""

import json
import os
from pathlib import Path

import pytest

from automaker.cli import build_parser, main


def write_config(project_dir: Path, config: dict) -> None:
    automaker_dir = project_dir / ".automaker"
    automaker_dir.mkdir(exist_ok=True)
    (automaker_dir / "deployment.json").write_text(json.dumps(config))


class TestParser:
    def test_run_collects_features(self):
        args = build_parser().parse_args(["run", "/tmp/p", "--feature", "a", "--feature", "b"])

        assert args.cmd == "run"
        assert args.project == "/tmp/p"
        assert args.feature == ["a", "b"]

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    def test_config_prints_defaults(self, project_dir: Path, capsys):
        code = main(["config", str(project_dir)])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["exists"] is False
        assert output["config"]["buildSteps"] == []

    def test_run_without_config(self, project_dir: Path, capsys):
        code = main(["run", str(project_dir)])

        assert code == 1
        assert "no deployment configuration" in capsys.readouterr().err

    @pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")
    def test_run_success_then_history(self, project_dir: Path, capsys):
        write_config(project_dir, {"buildSteps": [{"name": "Build", "command": "echo ok"}]})

        code = main(["run", str(project_dir), "--feature", "f1"])

        assert code == 0
        result = json.loads(capsys.readouterr().out)
        assert result["status"] == "success"
        assert result["featureIds"] == ["f1"]

        assert main(["history", str(project_dir), "--limit", "5"]) == 0
        history = json.loads(capsys.readouterr().out)
        assert [record["id"] for record in history] == [result["id"]]

    @pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")
    def test_run_failure_exit_code(self, project_dir: Path, capsys):
        write_config(project_dir, {"buildSteps": [{"name": "Broken", "command": "exit 3"}]})

        code = main(["run", str(project_dir)])

        assert code == 1
        result = json.loads(capsys.readouterr().out)
        assert result["status"] == "failed"
        assert result["error"] == "Build step failed: Broken"
