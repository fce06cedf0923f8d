"""Orchestrator: the public entry point tying store, tracker and interpreter together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

from .adapters import Adapters, get_adapters
from .config import StepflowConfig, load_config
from .contracts import ExecutionStatus, WorkflowDefinition, WorkflowExecution
from .errors import ExecutionStopped, NotFoundError, StepFailure, WorkflowFailed
from .events import (
    WORKFLOW_COMPLETED,
    WORKFLOW_DEFINED,
    WORKFLOW_DELETED,
    WORKFLOW_FAILED,
    WORKFLOW_STARTED,
    WORKFLOW_STOPPED,
    EventEmitter,
    EventHandler,
)
from .interpreter import StepInterpreter
from .persistence import get_store
from .store import WorkflowStore
from .tracker import ExecutionTracker

logger = logging.getLogger(__name__)


def normalize_context(context: Optional[Mapping[str, Any]]) -> dict[str, str]:
    """Coerce a caller-supplied context into the string-keyed variable bag."""
    normalized: dict[str, str] = {}
    for key, value in (context or {}).items():
        if isinstance(value, bool):
            normalized[str(key)] = "true" if value else "false"
        elif value is None:
            normalized[str(key)] = ""
        else:
            normalized[str(key)] = str(value)
    return normalized


class Orchestrator:
    """Define, run and inspect workflows.

    Each instance owns its store, tracker and interpreter, so several
    independent orchestrators can live in one process.
    """

    def __init__(
        self,
        store: WorkflowStore,
        tracker: Optional[ExecutionTracker] = None,
        adapters: Optional[Adapters] = None,
        events: Optional[EventEmitter] = None,
        persist_executions: bool = False,
        interpreter: Optional[StepInterpreter] = None,
    ) -> None:
        self.store = store
        self.tracker = tracker or ExecutionTracker()
        self.adapters = adapters or Adapters()
        self.events = events or EventEmitter()
        self.persist_executions = persist_executions
        self.interpreter = interpreter or StepInterpreter(
            self.adapters, self.events, stop_requested=self._stop_requested
        )

    @classmethod
    def from_config(cls, config: Optional[StepflowConfig] = None) -> "Orchestrator":
        """Build an orchestrator wired to the configured store and adapters."""
        config = config or load_config()
        return cls(
            WorkflowStore(get_store(config.store_url)),
            adapters=get_adapters(config),
            persist_executions=config.persist_executions,
        )

    def on(self, event: str, handler: EventHandler) -> None:
        self.events.on(event, handler)

    # ------------------------------------------------------------------
    # Definitions
    async def define(
        self, name: str, definition: Union[WorkflowDefinition, Mapping[str, Any]]
    ) -> WorkflowDefinition:
        workflow = await self.store.define(name, definition)
        await self.events.emit(WORKFLOW_DEFINED, workflow)
        return workflow

    async def load(self, name: str) -> WorkflowDefinition:
        return await self.store.load(name)

    async def list_workflows(self) -> list[WorkflowDefinition]:
        return await self.store.list()

    async def delete(self, name: str) -> bool:
        deleted = await self.store.delete(name)
        if deleted:
            await self.events.emit(WORKFLOW_DELETED, name)
        return deleted

    async def install_predefined(self) -> list[WorkflowDefinition]:
        """Define the built-in workflows, overwriting same-named definitions."""
        from .predefined import PREDEFINED_WORKFLOWS

        return [
            await self.define(name, definition)
            for name, definition in PREDEFINED_WORKFLOWS.items()
        ]

    # ------------------------------------------------------------------
    # Executions
    async def start(
        self,
        name: str,
        context: Optional[Mapping[str, Any]] = None,
        raise_on_failure: bool = True,
    ) -> WorkflowExecution:
        """Run workflow ``name`` to a terminal state.

        Returns the terminal execution record. A stop-causing step failure
        leaves the record ``failed`` and, unless ``raise_on_failure`` is
        false, raises :class:`WorkflowFailed` carrying that record. Runs
        stopped through :meth:`stop` return normally with status ``stopped``.
        Cancelling the coroutine records the run as ``stopped`` before the
        cancellation propagates.

        Raises:
            NotFoundError: If no workflow named ``name`` exists.
            WorkflowFailed: See above.
        """
        workflow = await self.store.load(name)
        execution = WorkflowExecution(
            workflow_name=workflow.name, context=normalize_context(context)
        )
        self.tracker.register(execution)
        logger.info(f"Started execution {execution.id} of workflow '{name}'")
        await self._snapshot(execution)
        await self.events.emit(WORKFLOW_STARTED, execution)

        try:
            await self.interpreter.run(workflow.steps, execution)
        except ExecutionStopped:
            logger.info(f"Execution {execution.id} stopped before completion")
        except StepFailure as failure:
            if execution.status is ExecutionStatus.RUNNING:
                execution.finish(
                    ExecutionStatus.FAILED,
                    error=failure.message,
                    failed_step=failure.failed_step,
                )
        except asyncio.CancelledError:
            logger.warning(f"Execution {execution.id} cancelled")
            if execution.status is ExecutionStatus.RUNNING:
                execution.finish(ExecutionStatus.STOPPED)
            await self._finalize(execution)
            raise
        else:
            if execution.status is ExecutionStatus.RUNNING:
                execution.finish(ExecutionStatus.COMPLETED)
        finally:
            self.tracker.finish(execution.id)

        await self._finalize(execution)
        if execution.status is ExecutionStatus.FAILED and raise_on_failure:
            raise WorkflowFailed(execution)
        return execution

    async def _finalize(self, execution: WorkflowExecution) -> None:
        if execution.status is ExecutionStatus.COMPLETED:
            logger.info(f"Execution {execution.id} completed")
            await self.events.emit(WORKFLOW_COMPLETED, execution)
        elif execution.status is ExecutionStatus.FAILED:
            logger.error(
                f"Execution {execution.id} failed at step '{execution.failed_step}': "
                f"{execution.error}"
            )
            await self.events.emit(WORKFLOW_FAILED, execution)
        else:
            await self.events.emit(WORKFLOW_STOPPED, execution)

        await self._snapshot(execution)

    async def _snapshot(self, execution: WorkflowExecution) -> None:
        if not self.persist_executions:
            return
        try:
            await self.store.save_execution(execution)
        except (OSError, ValueError) as exc:
            logger.warning(f"Could not persist execution {execution.id}: {exc}")

    async def _stop_requested(self, execution: WorkflowExecution) -> bool:
        """Pick up stop requests recorded in the store by another process."""
        if not self.persist_executions:
            return False
        document = await self.store.documents.load_execution(execution.id)
        if document is None or document.get("status") != ExecutionStatus.STOPPED.value:
            return False
        self.tracker.stop(execution.id)
        return True

    def get_active(self) -> list[WorkflowExecution]:
        return self.tracker.get_active()

    def stop(self, execution_id: str) -> bool:
        """Request cooperative cancellation of ``execution_id``."""
        return self.tracker.stop(execution_id)

    async def request_stop(self, execution_id: str) -> bool:
        """Stop an execution owned by this or, via the store, another process.

        Runs in other processes notice the persisted ``stopped`` status the
        next time their interpreter checks between steps.
        """
        if self.tracker.stop(execution_id):
            return True
        if not self.persist_executions:
            return False
        try:
            execution = await self.store.load_execution(execution_id)
        except NotFoundError:
            return False
        if execution.is_terminal:
            return False
        execution.finish(ExecutionStatus.STOPPED)
        await self.store.save_execution(execution)
        logger.info(f"Requested stop of execution {execution_id} through the store")
        return True

    async def get_status(self) -> list[WorkflowExecution]:
        """Active executions of this process plus running ones recorded in the store."""
        active = {execution.id: execution for execution in self.get_active()}
        if self.persist_executions:
            for execution in await self.store.list_executions():
                if not execution.is_terminal and execution.id not in active:
                    active[execution.id] = execution
        return list(active.values())

    async def get_execution(self, execution_id: str) -> WorkflowExecution:
        """Return an active execution snapshot or a persisted terminal record."""
        active = self.tracker.get(execution_id)
        if active is not None:
            return active
        return await self.store.load_execution(execution_id)

    async def list_executions(self) -> list[WorkflowExecution]:
        return await self.store.list_executions()

    async def close(self) -> None:
        await self.adapters.close()
        close_store = getattr(self.store.documents, "close", None)
        if close_store is not None:
            close_store()
