"""Error taxonomy for stepflow."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .contracts import WorkflowExecution


class StepflowError(Exception):
    """Base class for all stepflow errors."""


class ValidationError(StepflowError):
    """A workflow definition is malformed."""


class NotFoundError(StepflowError):
    """A workflow name or execution id does not exist."""


class ProcessError(StepflowError):
    """A subprocess could not be started or exited unsuccessfully."""


class TransportError(StepflowError):
    """An HTTP or notification call failed at the transport level."""


class ExpressionError(StepflowError):
    """A condition expression could not be parsed or evaluated."""


class StepFailure(StepflowError):
    """A step's collaborator returned a non-success result.

    The message of any wrapped collaborator error is preserved so it can be
    recorded on the step execution. ``failed_step`` names the innermost step
    that failed; it differs from ``step_name`` when the failure surfaced
    through a ``sequential`` or ``parallel`` block.
    """

    def __init__(
        self,
        step_name: str,
        message: str,
        result: Optional[dict[str, Any]] = None,
        failed_step: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.step_name = step_name
        self.message = message
        self.result = result
        self.failed_step = failed_step or step_name


class ExecutionStopped(StepflowError):
    """Raised inside the interpreter once an execution has been stopped."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution '{execution_id}' was stopped")
        self.execution_id = execution_id


class WorkflowFailed(StepflowError):
    """A workflow run ended with status ``failed``.

    The terminal execution record is attached so callers that catch the error
    can still inspect every step outcome.
    """

    def __init__(self, execution: "WorkflowExecution") -> None:
        super().__init__(
            f"Workflow '{execution.workflow_name}' failed: {execution.error}"
        )
        self.execution = execution

    @property
    def failed_step(self) -> Optional[str]:
        return self.execution.failed_step
