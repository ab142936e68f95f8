"""Unit tests for the step executor."""

import asyncio
import os
import time
from pathlib import Path

import pytest

from automaker.core.executor import STDERR_SEPARATOR, StepExecutor, combine_output

pytestmark = pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")


class TestStepExecutor:
    """Tests for StepExecutor."""

    @pytest.fixture
    def executor(self) -> StepExecutor:
        return StepExecutor(kill_grace_ms=1000)

    @pytest.mark.asyncio
    async def test_successful_command(self, executor: StepExecutor, tmp_path: Path):
        """Test exit code 0 is a success with captured stdout."""
        result = await executor.run("echo hello", tmp_path)

        assert result.success is True
        assert result.output == "hello\n"
        assert result.error is None
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_shell_features(self, executor: StepExecutor, tmp_path: Path):
        """Test pipes and redirects work through the shell."""
        result = await executor.run("echo abc | tr a-z A-Z > out.txt && cat out.txt", tmp_path)

        assert result.success is True
        assert result.output == "ABC\n"
        assert (tmp_path / "out.txt").exists()

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, executor: StepExecutor, tmp_path: Path):
        """Test a failing command reports its exit code."""
        result = await executor.run("echo partial; exit 3", tmp_path)

        assert result.success is False
        assert result.error == "Exit code: 3"
        assert result.output == "partial\n"

    @pytest.mark.asyncio
    async def test_stderr_block_appended(self, executor: StepExecutor, tmp_path: Path):
        """Test stderr is appended in a delimited block."""
        result = await executor.run("echo out; echo err >&2", tmp_path)

        assert result.output == f"out\n{STDERR_SEPARATOR}err\n"

    @pytest.mark.asyncio
    async def test_no_stderr_block_when_empty(self, executor: StepExecutor, tmp_path: Path):
        result = await executor.run("echo only-out", tmp_path)

        assert "[stderr]" not in result.output

    @pytest.mark.asyncio
    async def test_working_directory(self, executor: StepExecutor, tmp_path: Path):
        """Test the command runs in the given directory."""
        sub = tmp_path / "web"
        sub.mkdir()

        result = await executor.run("pwd", sub)

        assert Path(result.output.strip()).resolve() == sub.resolve()

    @pytest.mark.asyncio
    async def test_env_merged_over_parent(
        self, executor: StepExecutor, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """Test caller variables win and parent variables are inherited."""
        monkeypatch.setenv("AUTOMAKER_PARENT_VAR", "parent")
        monkeypatch.setenv("AUTOMAKER_SHARED_VAR", "parent")

        result = await executor.run(
            'echo "$AUTOMAKER_PARENT_VAR $AUTOMAKER_SHARED_VAR $AUTOMAKER_STEP_VAR"',
            tmp_path,
            env={"AUTOMAKER_SHARED_VAR": "step", "AUTOMAKER_STEP_VAR": "only-step"},
        )

        assert result.output == "parent step only-step\n"

    @pytest.mark.asyncio
    async def test_timeout_terminates_command(self, executor: StepExecutor, tmp_path: Path):
        """Test a long command is killed and reported as a timeout."""
        started = time.monotonic()

        result = await executor.run("echo begun; sleep 30", tmp_path, timeout_ms=300)

        assert time.monotonic() - started < 10
        assert result.success is False
        assert result.timed_out is True
        assert result.error == "Command timed out after 300ms"
        assert result.output == "begun\n"

    @pytest.mark.asyncio
    async def test_timeout_kills_child_processes(self, executor: StepExecutor, tmp_path: Path):
        """Test background children of the shell do not survive a timeout."""
        marker = tmp_path / "late.txt"

        await executor.run(f"(sleep 1; touch {marker}) & sleep 30", tmp_path, timeout_ms=200)
        await asyncio.sleep(1.5)

        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_cancel_event_stops_command(self, executor: StepExecutor, tmp_path: Path):
        """Test setting the cancel event terminates the command."""
        cancel = asyncio.Event()
        task = asyncio.create_task(
            executor.run("sleep 30", tmp_path, timeout_ms=60_000, cancel_event=cancel)
        )
        await asyncio.sleep(0.2)
        cancel.set()

        result = await asyncio.wait_for(task, timeout=10)

        assert result.success is False
        assert result.cancelled is True
        assert result.error == "Cancelled"

    @pytest.mark.asyncio
    async def test_spawn_failure_is_reported(self, executor: StepExecutor, tmp_path: Path):
        """Test a missing working directory fails without raising."""
        result = await executor.run("echo hi", tmp_path / "does-not-exist")

        assert result.success is False
        assert result.output == ""
        assert result.error

    @pytest.mark.asyncio
    async def test_output_callback(self, executor: StepExecutor, tmp_path: Path):
        """Test output chunks are forwarded as they arrive."""
        chunks: list[str] = []

        async def collect(chunk: str) -> None:
            chunks.append(chunk)

        await executor.run("echo one; echo two >&2", tmp_path, on_output=collect)

        combined = "".join(chunks)
        assert "one\n" in combined
        assert "two\n" in combined


class TestCombineOutput:
    """Tests for combine_output."""

    def test_stdout_only(self):
        assert combine_output("a", "") == "a"

    def test_with_stderr(self):
        assert combine_output("a", "b") == "a\n[stderr]\nb"
