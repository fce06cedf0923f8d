"""Stepflow: named multi-step workflows for local development automation."""

from .config import StepflowConfig, load_config
from .contracts import (
    ExecutionStatus,
    StepExecution,
    StepKind,
    StepStatus,
    WorkflowDefinition,
    WorkflowExecution,
)
from .errors import (
    NotFoundError,
    StepFailure,
    StepflowError,
    ValidationError,
    WorkflowFailed,
)
from .orchestrator import Orchestrator
from .persistence import get_store
from .store import WorkflowStore

__version__ = "0.1.0"
__all__ = [
    "ExecutionStatus",
    "NotFoundError",
    "Orchestrator",
    "StepExecution",
    "StepFailure",
    "StepKind",
    "StepStatus",
    "StepflowConfig",
    "StepflowError",
    "ValidationError",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowFailed",
    "WorkflowStore",
    "get_store",
    "load_config",
]
