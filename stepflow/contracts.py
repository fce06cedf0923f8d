"""Core data contracts for stepflow workflows and executions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)

from .constants import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY_MS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class StepKind(str, Enum):
    COMMAND = "command"
    SCRIPT = "script"
    CONDITION = "condition"
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    WAIT = "wait"
    HTTP = "http"
    FILE = "file"
    NOTIFICATION = "notification"


class ErrorPolicy(str, Enum):
    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"


class FileOperation(str, Enum):
    READ = "read"
    WRITE = "write"
    APPEND = "append"
    DELETE = "delete"
    COPY = "copy"
    MOVE = "move"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    STOPPED = "stopped"


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


# ----------------------------------------------------------------------
# Step definitions


class BaseStep(BaseModel):
    """Fields shared by every step kind."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    on_error: ErrorPolicy = Field(
        default=ErrorPolicy.STOP,
        alias="onError",
        validation_alias=AliasChoices("onError", "on_error"),
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        alias="maxRetries",
        validation_alias=AliasChoices("maxRetries", "max_retries"),
    )
    retry_delay_ms: int = Field(
        default=DEFAULT_RETRY_DELAY_MS,
        ge=0,
        alias="retryDelayMs",
        validation_alias=AliasChoices("retryDelayMs", "retryDelay", "retry_delay_ms"),
    )

    @property
    def label(self) -> str:
        """Human readable label, falling back to the step kind."""
        return self.name or self.kind  # type: ignore[attr-defined]


class CommandStep(BaseStep):
    kind: Literal["command"] = "command"
    command: str
    cwd: Optional[str] = None


class ScriptStep(BaseStep):
    kind: Literal["script"] = "script"
    script: str
    interpreter: Optional[str] = None
    args: List[str] = Field(default_factory=list)


class ConditionStep(BaseStep):
    kind: Literal["condition"] = "condition"
    condition: str


class ParallelStep(BaseStep):
    kind: Literal["parallel"] = "parallel"
    steps: List["StepNode"] = Field(min_length=1)


class SequentialStep(BaseStep):
    kind: Literal["sequential"] = "sequential"
    steps: List["StepNode"] = Field(min_length=1)


class WaitStep(BaseStep):
    kind: Literal["wait"] = "wait"
    duration: int = Field(default=0, ge=0, description="Milliseconds to sleep")


class HttpRequestSpec(BaseModel):
    method: str = "GET"
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    timeout: Optional[float] = None


class HttpStep(BaseStep):
    kind: Literal["http"] = "http"
    request: HttpRequestSpec


class FileOperationSpec(BaseModel):
    operation: FileOperation
    path: str
    destination: Optional[str] = None
    content: Optional[str] = None
    encoding: str = "utf-8"

    @model_validator(mode="after")
    def _check_destination(self) -> "FileOperationSpec":
        if self.operation in (FileOperation.COPY, FileOperation.MOVE) and not self.destination:
            raise ValueError(f"'{self.operation.value}' requires a destination")
        return self


class FileStep(BaseStep):
    kind: Literal["file"] = "file"
    operation: FileOperationSpec


class NotificationSpec(BaseModel):
    """Payload handed to a notification sink; extra fields are kept."""

    model_config = ConfigDict(extra="allow")

    message: str
    channel: Optional[str] = None


class NotificationStep(BaseStep):
    kind: Literal["notification"] = "notification"
    notification: NotificationSpec


STEP_KINDS = {kind.value for kind in StepKind}


def _normalize_step(data: Any) -> Any:
    """Accept the legacy ``type`` key and reject unknown kinds early."""
    if not isinstance(data, dict):
        return data
    if "kind" not in data and "type" in data:
        data = dict(data)
        data["kind"] = data.pop("type")
    kind = data.get("kind")
    if isinstance(kind, StepKind):
        data = {**data, "kind": kind.value}
    elif kind not in STEP_KINDS:
        raise ValueError(f"Unknown step kind: {kind!r}")
    return data


Step = Annotated[
    Union[
        CommandStep,
        ScriptStep,
        ConditionStep,
        ParallelStep,
        SequentialStep,
        WaitStep,
        HttpStep,
        FileStep,
        NotificationStep,
    ],
    Field(discriminator="kind"),
]

StepNode = Annotated[Step, BeforeValidator(_normalize_step)]

ParallelStep.model_rebuild()
SequentialStep.model_rebuild()


def iter_steps(steps: List[Any]) -> Iterator[Any]:
    """Yield every step in ``steps`` depth-first, left-to-right."""
    for step in steps:
        yield step
        children = getattr(step, "steps", None)
        if children:
            yield from iter_steps(children)


class WorkflowDefinition(BaseModel):
    """A named tree of steps."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: Optional[str] = None
    steps: List[StepNode] = Field(min_length=1)
    created_at: datetime = Field(
        default_factory=utcnow,
        alias="createdAt",
        validation_alias=AliasChoices("createdAt", "created_at"),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        alias="updatedAt",
        validation_alias=AliasChoices("updatedAt", "updated_at"),
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize into the JSON document kept by the document store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "WorkflowDefinition":
        return cls.model_validate(data)


# ----------------------------------------------------------------------
# Execution records

_STEP_TRANSITIONS: dict[StepStatus, set[StepStatus]] = {
    StepStatus.PENDING: {StepStatus.RUNNING, StepStatus.STOPPED},
    StepStatus.RUNNING: {
        StepStatus.COMPLETED,
        StepStatus.FAILED,
        StepStatus.RETRYING,
        StepStatus.STOPPED,
    },
    StepStatus.RETRYING: {StepStatus.RUNNING, StepStatus.FAILED, StepStatus.STOPPED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
    StepStatus.STOPPED: set(),
}


class StepExecution(BaseModel):
    """Outcome of running a single step."""

    id: str = Field(default_factory=_new_id)
    name: str
    kind: StepKind
    status: StepStatus = StepStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    retry_count: int = 0
    attempts: int = 0

    def transition(self, status: StepStatus) -> None:
        """Move to ``status``, refusing to leave a terminal state."""
        if status not in _STEP_TRANSITIONS[self.status]:
            raise ValueError(
                f"Illegal step transition {self.status.value} -> {status.value}"
            )
        self.status = status

    def start_attempt(self) -> None:
        if self.attempts:
            self.id = _new_id()
        self.transition(StepStatus.RUNNING)
        self.attempts += 1
        self.start_time = utcnow()
        self.end_time = None
        self.error = None

    def complete(self, result: dict[str, Any]) -> None:
        self.transition(StepStatus.COMPLETED)
        self.result = result
        self.end_time = utcnow()

    def fail(self, error: str, result: Optional[dict[str, Any]] = None) -> None:
        self.transition(StepStatus.FAILED)
        self.error = error
        self.result = result
        self.end_time = utcnow()

    def mark_retrying(self, error: str) -> None:
        self.transition(StepStatus.RETRYING)
        self.error = error
        self.retry_count += 1


class WorkflowExecution(BaseModel):
    """One run of a workflow against a context."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_name: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    context: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepExecution] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    failed_step: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not ExecutionStatus.RUNNING

    def finish(
        self,
        status: ExecutionStatus,
        error: Optional[str] = None,
        failed_step: Optional[str] = None,
    ) -> None:
        self.status = status
        self.error = error
        self.failed_step = failed_step
        self.end_time = utcnow()

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, data: str) -> "WorkflowExecution":
        return cls.model_validate_json(data)
