"""Bookkeeping for in-flight workflow executions."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .contracts import ExecutionStatus, WorkflowExecution

logger = logging.getLogger(__name__)


class ExecutionTracker:
    """Own the set of currently running executions.

    ``start`` and ``stop`` may race from different callers or threads, so the
    active map is only touched while holding ``_lock``.
    """

    def __init__(self) -> None:
        self._active: Dict[str, WorkflowExecution] = {}
        self._lock = threading.Lock()

    def register(self, execution: WorkflowExecution) -> None:
        with self._lock:
            if execution.id in self._active:
                raise ValueError(f"Execution '{execution.id}' is already active")
            self._active[execution.id] = execution
        logger.debug(f"Registered execution {execution.id} ({execution.workflow_name})")

    def finish(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Drop ``execution_id`` from the active set, returning it if present."""
        with self._lock:
            return self._active.pop(execution_id, None)

    def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        with self._lock:
            execution = self._active.get(execution_id)
            return execution.model_copy(deep=True) if execution else None

    def get_active(self) -> list[WorkflowExecution]:
        """Return detached snapshots of every active execution."""
        with self._lock:
            return [execution.model_copy(deep=True) for execution in self._active.values()]

    def stop(self, execution_id: str) -> bool:
        """Mark an active execution ``stopped``.

        Steps already handed to a collaborator keep running; the interpreter
        notices the flag before dispatching its next step.
        """
        with self._lock:
            execution = self._active.pop(execution_id, None)
            if execution is None:
                return False
            execution.finish(ExecutionStatus.STOPPED)
        logger.info(f"Stopped execution {execution_id}")
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)
