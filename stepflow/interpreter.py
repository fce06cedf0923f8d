"""Step interpreter: runs a step tree against an execution record."""

from __future__ import annotations

import asyncio
import logging
import re
import sys
from pathlib import Path
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from .adapters import Adapters
from .constants import ENV_KEY_PREFIX, SCRIPT_ENV_PREFIX, WORKING_DIRECTORY_KEY
from .contracts import (
    CommandStep,
    ConditionStep,
    ErrorPolicy,
    ExecutionStatus,
    FileOperation,
    FileStep,
    HttpRequestSpec,
    HttpStep,
    NotificationSpec,
    NotificationStep,
    ParallelStep,
    ScriptStep,
    SequentialStep,
    StepExecution,
    StepKind,
    StepStatus,
    WaitStep,
    WorkflowExecution,
    utcnow,
)
from .errors import ExecutionStopped, StepFailure, StepflowError
from .events import (
    STEP_COMPLETED,
    STEP_FAILED,
    STEP_RETRYING,
    STEP_STARTED,
    EventEmitter,
)
from .templating import render, render_optional, render_structure

logger = logging.getLogger(__name__)

Context = Mapping[str, str]
StepHandler = Callable[[Any, Context, WorkflowExecution], Awaitable[dict[str, Any]]]
StopCheck = Callable[[WorkflowExecution], Awaitable[bool]]

SCRIPT_INTERPRETERS = {
    ".py": sys.executable,
    ".js": "node",
    ".sh": "sh",
    ".ps1": "pwsh",
}


def script_environment(context: Context) -> dict[str, str]:
    """Derive environment variables for ``script`` steps from ``context``.

    ``env.NAME`` entries are exported verbatim as ``NAME``; every other entry
    is exported as ``STEPFLOW_<KEY>``.
    """
    env: dict[str, str] = {}
    for key, value in context.items():
        if key.startswith(ENV_KEY_PREFIX):
            env[key[len(ENV_KEY_PREFIX):]] = value
        else:
            env[SCRIPT_ENV_PREFIX + re.sub(r"\W", "_", key).upper()] = value
    return env


class StepInterpreter:
    """Execute steps depth-first, left-to-right, honouring ``on_error``."""

    def __init__(
        self,
        adapters: Optional[Adapters] = None,
        events: Optional[EventEmitter] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        stop_requested: Optional[StopCheck] = None,
    ) -> None:
        self._adapters = adapters or Adapters()
        self._events = events or EventEmitter()
        self._sleep = sleep
        self._stop_requested = stop_requested
        self._handlers: dict[StepKind, StepHandler] = {
            StepKind.COMMAND: self._run_command,
            StepKind.SCRIPT: self._run_script,
            StepKind.CONDITION: self._run_condition,
            StepKind.PARALLEL: self._run_parallel,
            StepKind.SEQUENTIAL: self._run_sequential,
            StepKind.WAIT: self._run_wait,
            StepKind.HTTP: self._run_http,
            StepKind.FILE: self._run_file,
            StepKind.NOTIFICATION: self._run_notification,
        }
        missing = set(StepKind) - set(self._handlers)
        if missing:
            raise RuntimeError(
                f"No handler registered for step kinds: {sorted(k.value for k in missing)}"
            )

    # ------------------------------------------------------------------
    # Sequencing and error policy
    async def run(self, steps: Sequence[Any], execution: WorkflowExecution) -> None:
        """Run ``steps`` in order.

        Raises:
            StepFailure: When a step fails under the ``stop`` policy or
                exhausts its retries.
            ExecutionStopped: When the execution was stopped between steps.
        """
        for step in steps:
            await self.run_step(step, execution)

    async def run_step(self, step: Any, execution: WorkflowExecution) -> StepExecution:
        """Run one step under its error policy and return its record.

        Under ``retry`` every failure marks the record ``retrying`` and bumps
        ``retry_count``. The step is re-attempted while ``retry_count`` stays
        within ``max_retries``, so an exhausted step ends ``failed`` with
        ``retry_count == max_retries + 1`` after ``max_retries + 1`` attempts.
        """
        await self._check_stopped(execution)
        record = StepExecution(name=step.label, kind=step.kind)
        execution.steps.append(record)

        while True:
            record.start_attempt()
            logger.info(
                f"Step '{record.name}' ({record.kind.value}) attempt {record.attempts} "
                f"started for execution {execution.id}"
            )
            await self._events.emit(STEP_STARTED, record)

            try:
                result = await self._dispatch(step, execution)
            except (ExecutionStopped, asyncio.CancelledError):
                record.transition(StepStatus.STOPPED)
                record.end_time = utcnow()
                raise
            except StepFailure as failure:
                error, failed_result = failure.message, failure.result
                origin = failure.failed_step
            else:
                record.complete(result)
                logger.info(f"Step '{record.name}' completed for execution {execution.id}")
                await self._events.emit(STEP_COMPLETED, record)
                return record

            if step.on_error is ErrorPolicy.RETRY:
                record.mark_retrying(error)
            if record.status is StepStatus.RETRYING and record.retry_count <= step.max_retries:
                logger.warning(
                    f"Step '{record.name}' failed ({error}); retry "
                    f"{record.retry_count}/{step.max_retries} in {step.retry_delay_ms}ms"
                )
                await self._events.emit(STEP_RETRYING, record)
                await self._sleep(step.retry_delay_ms / 1000)
                if await self._is_stopped(execution):
                    record.transition(StepStatus.STOPPED)
                    record.end_time = utcnow()
                    raise ExecutionStopped(execution.id)
                continue

            record.fail(error, failed_result)
            logger.error(f"Step '{record.name}' failed for execution {execution.id}: {error}")
            await self._events.emit(STEP_FAILED, record)
            if step.on_error is ErrorPolicy.CONTINUE:
                return record
            raise StepFailure(record.name, error, failed_result, failed_step=origin)

    async def _dispatch(self, step: Any, execution: WorkflowExecution) -> dict[str, Any]:
        handler = self._handlers[StepKind(step.kind)]
        context = MappingProxyType(execution.context)
        try:
            return await handler(step, context, execution)
        except (StepFailure, ExecutionStopped):
            raise
        except (StepflowError, OSError, ValueError) as exc:
            raise StepFailure(step.label, str(exc)) from exc
        except Exception as exc:
            logger.exception(f"Unexpected error in step '{step.label}'")
            raise StepFailure(step.label, f"{type(exc).__name__}: {exc}") from exc

    async def _is_stopped(self, execution: WorkflowExecution) -> bool:
        if execution.status is ExecutionStatus.STOPPED:
            return True
        if self._stop_requested is not None:
            return await self._stop_requested(execution)
        return False

    async def _check_stopped(self, execution: WorkflowExecution) -> None:
        if await self._is_stopped(execution):
            raise ExecutionStopped(execution.id)

    # ------------------------------------------------------------------
    # Step kinds
    async def _run_command(
        self, step: CommandStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        command = render(step.command, context)
        cwd = render_optional(step.cwd, context) or context.get(WORKING_DIRECTORY_KEY)
        result = await self._adapters.process.run(command, cwd=cwd)
        if not result.ok:
            detail = result.stderr.strip() or result.stdout.strip()
            raise StepFailure(
                step.label,
                f"Command exited with code {result.exit_code}: {detail}",
                {"success": False, "output": result.stdout.strip(), "exit_code": result.exit_code},
            )
        return {"success": True, "output": result.stdout.strip(), "exit_code": result.exit_code}

    async def _run_script(
        self, step: ScriptStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        cwd = context.get(WORKING_DIRECTORY_KEY)
        script_path = Path(render(step.script, context)).expanduser()
        if not script_path.is_absolute():
            script_path = Path(cwd or Path.cwd()) / script_path
        script_path = script_path.resolve()
        if not script_path.exists():
            raise StepFailure(step.label, f"Script not found: {script_path}")

        interpreter = step.interpreter or SCRIPT_INTERPRETERS.get(script_path.suffix)
        args = [render(arg, context) for arg in step.args]
        argv = ([interpreter] if interpreter else []) + [str(script_path), *args]

        result = await self._adapters.process.run(
            argv, cwd=cwd, env=script_environment(context)
        )
        if not result.ok:
            raise StepFailure(
                step.label,
                f"Script failed with code {result.exit_code}: {result.stderr.strip()}",
                {"success": False, "output": result.stdout.strip(), "exit_code": result.exit_code},
            )
        return {"success": True, "output": result.stdout.strip(), "exit_code": result.exit_code}

    async def _run_condition(
        self, step: ConditionStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        expression = render(step.condition, context)
        value = self._adapters.evaluator.evaluate(expression, context)
        return {"success": True, "result": value}

    async def _run_parallel(
        self, step: ParallelStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        # every child runs to completion; a failure never cancels its siblings
        outcomes = await asyncio.gather(
            *(self.run_step(child, execution) for child in step.steps),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, ExecutionStopped):
                raise outcome

        # the aggregate is the AND of every child, whatever the child's own policy
        results: list[Any] = []
        failures: list[str] = []
        origins: list[str] = []
        for outcome in outcomes:
            if isinstance(outcome, StepFailure):
                failures.append(f"{outcome.step_name}: {outcome.message}")
                origins.append(outcome.failed_step)
                results.append({"success": False, "error": outcome.message})
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome.status is StepStatus.FAILED:
                failures.append(f"{outcome.name}: {outcome.error}")
                origins.append(outcome.name)
                results.append(outcome.result or {"success": False, "error": outcome.error})
            else:
                results.append(outcome.result)

        summary = {"success": not failures, "results": results}
        if failures:
            raise StepFailure(
                step.label,
                f"{len(failures)} of {len(step.steps)} parallel steps failed: "
                + "; ".join(failures),
                summary,
                failed_step=origins[0],
            )
        return summary

    async def _run_sequential(
        self, step: SequentialStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        records = []
        for child in step.steps:
            records.append(await self.run_step(child, execution))
        return {
            "success": all(r.status is StepStatus.COMPLETED for r in records),
            "results": [r.result for r in records],
        }

    async def _run_wait(
        self, step: WaitStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        await self._sleep(step.duration / 1000)
        return {"success": True, "message": f"Waited {step.duration}ms"}

    async def _run_http(
        self, step: HttpStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        request = HttpRequestSpec.model_validate(
            render_structure(step.request.model_dump(), context)
        )
        response = await self._adapters.http.send(
            request.method,
            request.url,
            headers=request.headers,
            body=request.body,
            timeout=request.timeout,
        )
        result = {"success": response.ok, "status": response.status, "data": response.body}
        if not response.ok:
            raise StepFailure(
                step.label,
                f"{request.method.upper()} {request.url} returned status {response.status}",
                result,
            )
        return result

    async def _run_file(
        self, step: FileStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        spec = step.operation
        fs = self._adapters.filesystem
        path = render(spec.path, context)
        content = render_optional(spec.content, context)
        destination = render_optional(spec.destination, context)
        op = spec.operation

        if op is FileOperation.READ:
            try:
                data = await fs.read(path, spec.encoding)
            except FileNotFoundError:
                raise StepFailure(step.label, f"File not found: {path}")
            return {"success": True, "content": data}
        if op is FileOperation.WRITE:
            await fs.write(path, content or "", spec.encoding)
            return {"success": True, "message": f"File written: {path}"}
        if op is FileOperation.APPEND:
            await fs.append(path, content or "", spec.encoding)
            return {"success": True, "message": f"File appended: {path}"}
        if op is FileOperation.DELETE:
            if await fs.delete(path):
                return {"success": True, "message": f"File deleted: {path}"}
            return {"success": True, "message": f"File not found: {path}"}
        if op is FileOperation.COPY:
            await fs.copy(path, destination)
            return {"success": True, "message": f"File copied: {path} -> {destination}"}
        if op is FileOperation.MOVE:
            await fs.move(path, destination)
            return {"success": True, "message": f"File moved: {path} -> {destination}"}
        raise StepFailure(step.label, f"Unknown file operation: {op}")

    async def _run_notification(
        self, step: NotificationStep, context: Context, execution: WorkflowExecution
    ) -> dict[str, Any]:
        notification = NotificationSpec.model_validate(
            render_structure(step.notification.model_dump(exclude_none=True), context)
        )
        await self._adapters.notifications.send(notification)
        return {"success": True, "message": "Notification sent"}
