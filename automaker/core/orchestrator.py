"""Deployment Pipeline Orchestrator.

Drives a single deployment through build steps, deploy steps, an optional
health check and an optional E2E test run, emitting lifecycle events as it
goes. At most one deployment runs per process.
"""

import asyncio
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Literal, Sequence, TypeVar

from automaker.config import settings
from automaker.core.config_store import ConfigStore, get_config_store
from automaker.core.events import EventSink, get_event_bus
from automaker.core.exceptions import (
    DeploymentCancelledError,
    DeploymentError,
    DeploymentInProgressError,
    InvalidDeploymentConfigError,
)
from automaker.core.executor import StepExecutor
from automaker.core.health import HealthProbe
from automaker.core.history import DeploymentHistory
from automaker.core.state import DeploymentSlot
from automaker.core.summarizers import ResultSummarizer, default_summarizer
from automaker.models.deployment import (
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
from automaker.utils.logging import get_logger
from automaker.utils.time import elapsed_ms, utc_now_iso

T = TypeVar("T")

StepPhase = Literal["build", "deploy"]

CANCELLED_MESSAGE = "Deployment cancelled by user"


def generate_deployment_id() -> str:
    """Opaque deployment id derived from the clock and a random suffix."""
    return f"deploy_{int(time.time() * 1000):x}_{secrets.token_hex(3)}"


@dataclass
class DeploymentRun:
    """Bookkeeping for one in-flight deployment."""

    deployment: DeploymentResult
    project_path: Path
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    # Set once the terminal state has been recorded and announced
    finished: bool = False

    # Set once the run has been handed to the history log
    recorded: bool = False


async def _discard(*tasks: asyncio.Future) -> None:
    """Cancel helper tasks and wait until they have actually finished."""
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class DeploymentOrchestrator:
    """Runs deployment pipelines.

    Pipeline phases:
    1. build - configured build steps, in order
    2. deploy - configured deploy steps, in order
    3. health_check - wait for ``healthCheckUrl`` (if configured)
    4. e2e - run the E2E command (if configured)

    Failures never propagate to the caller: they end the deployment in the
    ``failed`` state with the reason recorded on the result.
    """

    def __init__(
        self,
        config_store: ConfigStore | None = None,
        executor: StepExecutor | None = None,
        health_probe: HealthProbe | None = None,
        summarizer: ResultSummarizer | None = None,
        events: EventSink | None = None,
        history: DeploymentHistory | None = None,
        slot: DeploymentSlot | None = None,
        kill_on_cancel: bool | None = None,
    ):
        self.config_store = config_store or get_config_store()
        self.executor = executor or StepExecutor()
        self.health_probe = health_probe or HealthProbe()
        self.summarizer = summarizer or default_summarizer()
        self.events = events
        self.history = history
        self.slot = slot or DeploymentSlot()
        self.kill_on_cancel = (
            settings.deploy_kill_on_cancel if kill_on_cancel is None else kill_on_cancel
        )
        self.logger = get_logger("orchestrator")

        self._run: DeploymentRun | None = None

    def set_event_sink(self, sink: EventSink | None) -> None:
        """Attach (or detach with None) the sink receiving deployment events."""
        self.events = sink

    def get_current_deployment(self) -> DeploymentResult | None:
        """The current or most recent deployment, if any."""
        return self.slot.current

    def is_deployment_running(self) -> bool:
        return self.slot.is_running()

    def start_deployment(
        self,
        project_path: str | Path,
        trigger: DeploymentTrigger = "manual",
        feature_ids: Sequence[str] | None = None,
    ) -> DeploymentRun:
        """Claim the deployment slot for a new run.

        Raises:
            DeploymentInProgressError: If another deployment is in flight
        """
        deployment = DeploymentResult(
            id=generate_deployment_id(),
            started_at=utc_now_iso(),
            status=DeploymentStatus.BUILDING,
            trigger=trigger,
            feature_ids=list(feature_ids) if feature_ids is not None else None,
        )

        if not self.slot.claim(deployment):
            running = self.slot.current
            running_id = running.id if running else None
            self.logger.warning(
                "deployment.rejected",
                reason="already_in_progress",
                running_deployment_id=running_id,
            )
            raise DeploymentInProgressError(running_id)

        run = DeploymentRun(deployment=deployment, project_path=Path(project_path))
        self._run = run

        self.logger.info(
            "deployment.started",
            deployment_id=deployment.id,
            project_path=str(project_path),
            trigger=trigger,
        )
        return run

    async def run_deployment(self, run: DeploymentRun) -> DeploymentResult:
        """Execute the pipeline for a claimed run; never raises for pipeline failures."""
        deployment = run.deployment

        try:
            # Cancelled before the pipeline got to start
            self._ensure_active(run)
            await self._emit(
                run,
                DeploymentEventType.DEPLOYMENT_STARTED,
                status=DeploymentStatus.BUILDING.value,
            )
            config = await self._load_config(run)

            await self._run_steps(run, config.build_steps, "build")

            self._set_status(run, DeploymentStatus.DEPLOYING)
            await self._emit(
                run,
                DeploymentEventType.DEPLOYMENT_STARTED,
                status=DeploymentStatus.DEPLOYING.value,
            )
            await self._run_steps(run, config.deploy_steps, "deploy")

            if config.health_check_url:
                await self._run_health_check(run, config)

            if config.e2e_tests:
                await self._run_e2e(run, config.e2e_tests)

            await self._finish(run, DeploymentStatus.SUCCESS)

        except DeploymentCancelledError:
            self.logger.info("deployment.stopped_after_cancel", deployment_id=deployment.id)
        except DeploymentError as e:
            self.logger.error(
                "deployment.failed",
                deployment_id=deployment.id,
                phase=e.phase,
                error=e.message,
            )
            await self._finish(run, DeploymentStatus.FAILED, e.message)
        except asyncio.CancelledError:
            await self._finish(
                run, DeploymentStatus.FAILED, "Deployment task was cancelled"
            )
            raise
        except Exception as e:
            self.logger.exception("deployment.crashed", deployment_id=deployment.id)
            await self._finish(run, DeploymentStatus.FAILED, str(e) or type(e).__name__)
        finally:
            await self._record_history(run)

        return deployment

    async def deploy(
        self,
        project_path: str | Path,
        trigger: DeploymentTrigger = "manual",
        feature_ids: Sequence[str] | None = None,
    ) -> DeploymentResult:
        """Start a deployment and wait for it to reach a terminal state.

        Raises:
            DeploymentInProgressError: If another deployment is in flight
        """
        run = self.start_deployment(project_path, trigger, feature_ids)
        return await self.run_deployment(run)

    async def auto_deploy_on_complete(
        self,
        project_path: str | Path,
        feature_ids: Sequence[str] | None = None,
    ) -> DeploymentResult | None:
        """Deploy after automated feature work finished, if the project opted in."""
        if not await self.config_store.has_config(project_path):
            return None

        config = await self.config_store.get_config(project_path)
        if not config.auto_deploy_on_complete:
            return None

        try:
            run = self.start_deployment(project_path, "auto_mode_complete", feature_ids)
        except DeploymentInProgressError:
            self.logger.info(
                "deployment.auto_skipped",
                project_path=str(project_path),
                reason="already_in_progress",
            )
            return None

        return await self.run_deployment(run)

    async def cancel_deployment(self) -> bool:
        """Fail the running deployment; returns False when nothing was running."""
        run = self._run
        if run is None or run.finished or not run.deployment.status.is_active:
            return False

        if self.kill_on_cancel:
            run.cancel_event.set()

        await self._finish(
            run,
            DeploymentStatus.FAILED,
            CANCELLED_MESSAGE,
            event_error="Cancelled by user",
        )
        self.logger.info(
            "deployment.cancelled",
            deployment_id=run.deployment.id,
            interrupted=self.kill_on_cancel,
        )
        return True

    async def get_deployment_history(
        self, project_path: str | Path, limit: int = 10
    ) -> list[DeploymentResult]:
        """Recent deployments of a project, newest first."""
        if self.history is None:
            current = self.slot.current
            return [current] if current is not None and limit > 0 else []

        history: list[DeploymentResult] = []
        run = self._run
        if (
            run is not None
            and not run.recorded
            and run.project_path.resolve() == Path(project_path).resolve()
        ):
            history.append(run.deployment)

        remaining = limit - len(history)
        history.extend(await self.history.recent(project_path, remaining))
        return history

    async def _run_steps(
        self, run: DeploymentRun, steps: Sequence[DeploymentStep], phase: StepPhase
    ) -> None:
        deployment = run.deployment
        results = deployment.build_results if phase == "build" else deployment.deploy_results

        for step in steps:
            self._ensure_active(run)
            step_result = await self._execute_step(run, step, phase)
            # The step that was running when a cancel landed is still recorded
            results.append(step_result)
            self._ensure_active(run)

            if step_result.status != StepStatus.FAILED:
                continue
            if not step.continue_on_error:
                raise DeploymentError(
                    f"{phase.capitalize()} step failed: {step.name}", phase=phase
                )
            self.logger.warning(
                "deployment.step.failure_ignored",
                deployment_id=deployment.id,
                phase=phase,
                step=step.name,
                error=step_result.error,
            )

    async def _execute_step(
        self, run: DeploymentRun, step: DeploymentStep, phase: StepPhase
    ) -> StepResult:
        start = time.monotonic()

        await self._emit(
            run,
            DeploymentEventType(f"{phase}_step_started"),
            step_name=step.name,
            status="running",
        )
        self.logger.info(
            "deployment.step.started",
            deployment_id=run.deployment.id,
            phase=phase,
            step=step.name,
        )

        result = await self.executor.run(
            step.command,
            self._resolve_dir(run.project_path, step.working_directory),
            env=step.env,
            timeout_ms=step.timeout_ms,
            cancel_event=run.cancel_event,
        )

        step_result = StepResult(
            step_name=step.name,
            status=StepStatus.SUCCESS if result.success else StepStatus.FAILED,
            output=result.output,
            error=result.error,
            duration_ms=elapsed_ms(start),
        )

        await self._emit(
            run,
            DeploymentEventType(f"{phase}_step_completed"),
            step_name=step.name,
            status=step_result.status.value,
            output=step_result.output,
            error=step_result.error,
            result=step_result,
        )
        self.logger.info(
            "deployment.step.completed",
            deployment_id=run.deployment.id,
            phase=phase,
            step=step.name,
            status=step_result.status.value,
            duration_ms=step_result.duration_ms,
        )
        return step_result

    async def _run_health_check(
        self, run: DeploymentRun, config: DeploymentConfig
    ) -> None:
        url = config.health_check_url
        self._set_status(run, DeploymentStatus.WAITING_FOR_HEALTH)
        await self._emit(run, DeploymentEventType.HEALTH_CHECK_STARTED, status="waiting")

        healthy = await self._until_cancelled(
            run, self.health_probe.await_url(url, config.health_check_timeout_ms)
        )

        await self._emit(
            run,
            DeploymentEventType.HEALTH_CHECK_COMPLETED,
            status="success" if healthy else "failed",
        )
        if not healthy:
            raise DeploymentError(
                f"Health check failed: {url} not available", phase="health_check"
            )

    async def _run_e2e(self, run: DeploymentRun, e2e: E2ETestConfig) -> None:
        self._set_status(run, DeploymentStatus.RUNNING_TESTS)
        await self._emit(run, DeploymentEventType.E2E_STARTED, status="running")

        e2e_result = await self._execute_e2e(run, e2e)
        run.deployment.e2e_result = e2e_result
        self._ensure_active(run)

        await self._emit(
            run,
            DeploymentEventType.E2E_COMPLETED,
            status=e2e_result.status.value,
            result=e2e_result,
        )
        if e2e_result.status == E2EStatus.FAILED:
            message = "E2E tests failed"
            if e2e_result.error:
                message = f"{message}: {e2e_result.error}"
            raise DeploymentError(message, phase="e2e")

    async def _execute_e2e(
        self, run: DeploymentRun, e2e: E2ETestConfig
    ) -> E2ETestResult:
        start = time.monotonic()

        # The E2E target may differ from the deployment's health check URL
        if e2e.wait_for_url:
            available = await self._until_cancelled(
                run, self.health_probe.await_url(e2e.wait_for_url, e2e.wait_timeout_ms)
            )
            if not available:
                return E2ETestResult(
                    status=E2EStatus.FAILED,
                    output=f"Target URL not available: {e2e.wait_for_url}",
                    error="Target URL timeout",
                    duration_ms=elapsed_ms(start),
                )

        self.logger.info(
            "deployment.e2e.started",
            deployment_id=run.deployment.id,
            command=e2e.command,
        )

        async def forward_output(chunk: str) -> None:
            await self._emit(run, DeploymentEventType.E2E_OUTPUT, output=chunk)

        result = await self.executor.run(
            e2e.command,
            self._resolve_dir(run.project_path, e2e.working_directory),
            env=e2e.env,
            timeout_ms=e2e.timeout_ms,
            on_output=forward_output,
            cancel_event=run.cancel_event,
        )
        counts = self.summarizer.summarize(result.output)

        return E2ETestResult(
            status=E2EStatus.PASSED if result.success else E2EStatus.FAILED,
            output=result.output,
            error=result.error,
            duration_ms=elapsed_ms(start),
            passed=counts.passed if counts else None,
            failed=counts.failed if counts else None,
            skipped=counts.skipped if counts else None,
        )

    async def _until_cancelled(self, run: DeploymentRun, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the run is cancelled first."""
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(run.cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await _discard(task, waiter)
            raise

        if task not in done:
            await _discard(task, waiter)
            raise DeploymentCancelledError(run.deployment.id)

        await _discard(waiter)
        self._ensure_active(run)
        return task.result()

    async def _finish(
        self,
        run: DeploymentRun,
        status: DeploymentStatus,
        error: str | None = None,
        event_error: str | None = None,
    ) -> None:
        """Record the terminal state and announce it, once."""
        if run.finished:
            return
        run.finished = True

        deployment = run.deployment
        deployment.status = status
        deployment.finished_at = utc_now_iso()
        if error is not None:
            deployment.error = error

        if status == DeploymentStatus.SUCCESS:
            await self._emit(
                run,
                DeploymentEventType.DEPLOYMENT_COMPLETED,
                status=status.value,
                result=deployment,
            )
            self.logger.info("deployment.completed", deployment_id=deployment.id)
        else:
            await self._emit(
                run,
                DeploymentEventType.DEPLOYMENT_FAILED,
                status=status.value,
                error=event_error or deployment.error,
                result=deployment,
            )

    async def _load_config(self, run: DeploymentRun) -> DeploymentConfig:
        try:
            return await self.config_store.load_config(run.project_path)
        except InvalidDeploymentConfigError as e:
            raise DeploymentError(e.message, phase="config") from e

    async def _record_history(self, run: DeploymentRun) -> None:
        """Append the run once its coroutine has stopped, so the record is final."""
        if self.history is None or not run.finished or run.recorded:
            return
        run.recorded = True
        try:
            await self.history.append(run.project_path, run.deployment)
        except OSError as e:
            self.logger.error(
                "deployment.history_write_failed",
                deployment_id=run.deployment.id,
                error=str(e),
            )

    def _set_status(self, run: DeploymentRun, status: DeploymentStatus) -> None:
        self._ensure_active(run)
        run.deployment.status = status

    def _ensure_active(self, run: DeploymentRun) -> None:
        if run.finished:
            raise DeploymentCancelledError(run.deployment.id)

    async def _emit(
        self,
        run: DeploymentRun,
        event_type: DeploymentEventType,
        result: StepResult | E2ETestResult | DeploymentResult | None = None,
        **fields: str | None,
    ) -> None:
        if self.events is None:
            return
        # Nothing may follow a deployment's terminal event
        if run.finished and not event_type.is_terminal:
            return

        event = DeploymentEvent(
            type=event_type,
            deployment_id=run.deployment.id,
            timestamp=utc_now_iso(),
            data=DeploymentEventData(
                result=result.model_copy(deep=True) if result is not None else None,
                **fields,
            ),
        )
        try:
            await self.events.publish(event)
        except Exception:
            self.logger.exception(
                "deployment.event_publish_failed",
                deployment_id=run.deployment.id,
                event_type=event_type.value,
            )

    @staticmethod
    def _resolve_dir(project_path: Path, working_directory: str | None) -> Path:
        return project_path / working_directory if working_directory else project_path


# Singleton instance
_orchestrator: DeploymentOrchestrator | None = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Get the process-wide orchestrator, wired to the shared event bus."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DeploymentOrchestrator(
            events=get_event_bus(),
            history=DeploymentHistory() if settings.deployment_history_enabled else None,
        )
    return _orchestrator
