"""Deployment data models.

The JSON form of every model uses camelCase keys, matching the
``.automaker/deployment.json`` document and the event stream consumed by
the UI. Python code uses the snake_case attribute names.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_STEP_TIMEOUT_MS = 300_000
DEFAULT_E2E_WAIT_TIMEOUT_MS = 60_000
DEFAULT_E2E_TIMEOUT_MS = 600_000
DEFAULT_HEALTH_CHECK_TIMEOUT_MS = 30_000

CONFIG_SCHEMA_VERSION = 1

DeploymentTrigger = Literal["manual", "auto_mode_complete"]


def _env_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _stringify_env(env: Any) -> Any:
    """Accept numbers and booleans in ``env``, as hand-written JSON often has them."""
    if not isinstance(env, dict):
        return env
    return {key: _env_value(value) for key, value in env.items()}


EnvVars = Annotated[dict[str, str], BeforeValidator(_stringify_env)]


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using aliases, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeploymentStatus(str, Enum):
    """Deployment state machine states."""

    IDLE = "idle"
    BUILDING = "building"
    DEPLOYING = "deploying"
    WAITING_FOR_HEALTH = "waiting_for_health"
    RUNNING_TESTS = "running_tests"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.SUCCESS, DeploymentStatus.FAILED)

    @property
    def is_active(self) -> bool:
        """True while a pipeline is in flight."""
        return not self.is_terminal and self != DeploymentStatus.IDLE


class StepStatus(str, Enum):
    """Outcome of a single build or deploy step."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class E2EStatus(str, Enum):
    """Outcome of the E2E test run."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeploymentStep(CamelModel):
    """One named shell command of the build or deploy phase."""

    model_config = ConfigDict(frozen=True)

    name: str
    command: str
    working_directory: str | None = None
    env: EnvVars | None = None
    timeout_ms: int = Field(
        default=DEFAULT_STEP_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("timeoutMs", "timeout", "timeout_ms"),
        serialization_alias="timeoutMs",
    )
    continue_on_error: bool = False


class E2ETestConfig(CamelModel):
    """E2E test run configuration."""

    model_config = ConfigDict(frozen=True)

    command: str
    working_directory: str | None = None
    wait_for_url: str | None = None
    wait_timeout_ms: int = Field(
        default=DEFAULT_E2E_WAIT_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("waitTimeoutMs", "waitTimeout", "wait_timeout_ms"),
        serialization_alias="waitTimeoutMs",
    )
    env: EnvVars | None = None
    timeout_ms: int = Field(
        default=DEFAULT_E2E_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("timeoutMs", "timeout", "timeout_ms"),
        serialization_alias="timeoutMs",
    )


class DeploymentConfig(CamelModel):
    """Per-project deployment configuration stored in .automaker/deployment.json."""

    version: int = CONFIG_SCHEMA_VERSION
    auto_deploy_on_complete: bool = False
    build_steps: list[DeploymentStep] = Field(default_factory=list)
    deploy_steps: list[DeploymentStep] = Field(default_factory=list)
    e2e_tests: E2ETestConfig | None = Field(default=None, alias="e2eTests")
    health_check_url: str | None = None
    health_check_timeout_ms: int = Field(
        default=DEFAULT_HEALTH_CHECK_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices(
            "healthCheckTimeoutMs", "healthCheckTimeout", "health_check_timeout_ms"
        ),
        serialization_alias="healthCheckTimeoutMs",
    )


class StepResult(CamelModel):
    """Result of one executed step."""

    model_config = ConfigDict(frozen=True)

    step_name: str
    status: StepStatus
    output: str = ""
    error: str | None = None
    duration_ms: int = 0


class E2ETestResult(CamelModel):
    """Result of the E2E test run."""

    status: E2EStatus
    output: str = ""
    error: str | None = None
    duration_ms: int = 0

    # Counts parsed from the runner's output, when recognisable
    passed: int | None = None
    failed: int | None = None
    skipped: int | None = None


class DeploymentResult(CamelModel):
    """Aggregate record of one deployment run."""

    id: str
    started_at: str
    finished_at: str | None = None
    status: DeploymentStatus = DeploymentStatus.IDLE
    build_results: list[StepResult] = Field(default_factory=list)
    deploy_results: list[StepResult] = Field(default_factory=list)
    e2e_result: E2ETestResult | None = Field(default=None, alias="e2eResult")
    error: str | None = None
    trigger: DeploymentTrigger = "manual"
    feature_ids: list[str] | None = None


class DeploymentEventType(str, Enum):
    """Event types streamed to deployment listeners."""

    DEPLOYMENT_STARTED = "deployment_started"
    BUILD_STEP_STARTED = "build_step_started"
    BUILD_STEP_COMPLETED = "build_step_completed"
    DEPLOY_STEP_STARTED = "deploy_step_started"
    DEPLOY_STEP_COMPLETED = "deploy_step_completed"
    HEALTH_CHECK_STARTED = "health_check_started"
    HEALTH_CHECK_COMPLETED = "health_check_completed"
    E2E_STARTED = "e2e_started"
    E2E_OUTPUT = "e2e_output"
    E2E_COMPLETED = "e2e_completed"
    DEPLOYMENT_COMPLETED = "deployment_completed"
    DEPLOYMENT_FAILED = "deployment_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DeploymentEventType.DEPLOYMENT_COMPLETED,
            DeploymentEventType.DEPLOYMENT_FAILED,
        )


class DeploymentEventData(CamelModel):
    """Optional payload of a deployment event."""

    step_name: str | None = None
    status: str | None = None
    output: str | None = None
    error: str | None = None
    result: StepResult | E2ETestResult | DeploymentResult | None = None


class DeploymentEvent(CamelModel):
    """A deployment lifecycle event."""

    type: DeploymentEventType
    deployment_id: str
    timestamp: str
    data: DeploymentEventData | None = None
