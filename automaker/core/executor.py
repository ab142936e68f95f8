"""Step executor.

Runs one shell command to completion, timeout or cancellation and always
returns a ``CommandResult``; failures are reported, never raised.
"""

import asyncio
import codecs
import contextlib
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from automaker.config import settings
from automaker.models.deployment import DEFAULT_STEP_TIMEOUT_MS
from automaker.utils.logging import get_logger

OutputCallback = Callable[[str], Awaitable[None]]

_POSIX = os.name == "posix"
_READ_CHUNK = 4096

# How long to wait for the output pipes to drain once the process is gone
_DRAIN_TIMEOUT_S = 2.0

STDERR_SEPARATOR = "\n[stderr]\n"


@dataclass
class CommandResult:
    """Outcome of a single command."""

    success: bool
    output: str
    error: str | None = None
    exit_code: int | None = None
    timed_out: bool = False
    cancelled: bool = False


def combine_output(stdout: str, stderr: str) -> str:
    """Stdout followed by a delimited stderr block when stderr is non-empty."""
    return stdout + (f"{STDERR_SEPARATOR}{stderr}" if stderr else "")


async def _drain(
    stream: asyncio.StreamReader | None,
    chunks: list[str],
    on_output: OutputCallback | None,
) -> None:
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(_READ_CHUNK)
        text = decoder.decode(data, final=not data)
        if text:
            chunks.append(text)
            if on_output is not None:
                await on_output(text)
        if not data:
            return


class StepExecutor:
    """Runs shell commands with a timeout and optional cancellation."""

    def __init__(self, kill_grace_ms: int | None = None):
        grace = settings.deploy_kill_grace_ms if kill_grace_ms is None else kill_grace_ms
        self.kill_grace_s = grace / 1000
        self.logger = get_logger("executor")

    async def run(
        self,
        command: str,
        cwd: str | Path,
        env: dict[str, str] | None = None,
        timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS,
        on_output: OutputCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> CommandResult:
        """Run ``command`` through the platform shell.

        Args:
            command: Shell command line; pipes and redirects are allowed
            cwd: Working directory for the command
            env: Variables merged over the current environment
            timeout_ms: Hard limit after which the command is terminated
            on_output: Awaited with every decoded chunk of stdout or stderr
            cancel_event: Terminates the command when set

        Returns:
            The command's combined output and outcome
        """
        merged_env = {**os.environ, **(env or {})}

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=str(cwd),
                env=merged_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except Exception as e:
            self.logger.exception("executor.spawn_failed", command=command, cwd=str(cwd))
            return CommandResult(success=False, output="", error=str(e))

        self.logger.debug("executor.started", command=command, pid=process.pid)

        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []
        readers = [
            asyncio.create_task(_drain(process.stdout, stdout_chunks, on_output)),
            asyncio.create_task(_drain(process.stderr, stderr_chunks, on_output)),
        ]
        exit_task = asyncio.create_task(process.wait())
        cancel_task = (
            asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        )
        waiters = {exit_task} if cancel_task is None else {exit_task, cancel_task}

        timed_out = False
        cancelled = False
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=timeout_ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if exit_task not in done:
                cancelled = cancel_task is not None and cancel_task in done
                timed_out = not cancelled
                self.logger.warning(
                    "executor.terminating",
                    command=command,
                    pid=process.pid,
                    reason="cancelled" if cancelled else "timeout",
                )
                await self.terminate(process)
        finally:
            if cancel_task is not None:
                cancel_task.cancel()
            if process.returncode is None:
                # Our caller was cancelled; never leave the child behind
                await self.terminate(process)
            exit_task.cancel()
            _, pending = await asyncio.wait(readers, timeout=_DRAIN_TIMEOUT_S)
            for reader in pending:
                reader.cancel()

        stdout = "".join(stdout_chunks)
        stderr = "".join(stderr_chunks)

        if timed_out:
            return CommandResult(
                success=False,
                output=stdout,
                error=f"Command timed out after {timeout_ms}ms",
                exit_code=process.returncode,
                timed_out=True,
            )
        if cancelled:
            return CommandResult(
                success=False,
                output=stdout,
                error="Cancelled",
                exit_code=process.returncode,
                cancelled=True,
            )

        code = process.returncode
        return CommandResult(
            success=code == 0,
            output=combine_output(stdout, stderr),
            error=None if code == 0 else f"Exit code: {code}",
            exit_code=code,
        )

    async def terminate(self, process: asyncio.subprocess.Process) -> None:
        """Stop a process gracefully, escalating to a kill after the grace period."""
        if process.returncode is not None:
            return
        self._signal(process, force=False)
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_s)
        except asyncio.TimeoutError:
            self.logger.warning("executor.killing", pid=process.pid)
            self._signal(process, force=True)
            await process.wait()

    def _signal(self, process: asyncio.subprocess.Process, force: bool) -> None:
        with contextlib.suppress(ProcessLookupError):
            if _POSIX:
                # The shell leads its own session, so signal the whole group
                os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
            elif force:
                process.kill()
            else:
                process.terminate()
