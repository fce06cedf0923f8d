"""Command line interface for defining and running stepflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
import typer
import yaml

from stepflow import Orchestrator, load_config
from stepflow.contracts import ExecutionStatus, WorkflowExecution, iter_steps
from stepflow.errors import StepflowError
from stepflow.templating import placeholders

app = typer.Typer(help="CLI for stepflow workflows", no_args_is_help=True)

T = TypeVar("T")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (defaults to config log_level)"
    ),
) -> None:
    """Stepflow CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _run(action: Callable[[Orchestrator], Awaitable[T]]) -> T:
    """Run ``action`` against a configured orchestrator on a fresh event loop.

    Stepflow errors and rejected identifiers (``ValueError`` from the store)
    are reported in red and mapped to exit code 1.
    """

    async def _inner() -> T:
        orchestrator = Orchestrator.from_config(load_config())
        try:
            return await action(orchestrator)
        finally:
            await orchestrator.close()

    try:
        return asyncio.run(_inner())
    except (StepflowError, ValueError) as exc:
        _fail(str(exc))
        raise  # pragma: no cover - _fail always raises


def _load_document(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("workflow document must be an object")
    return data


def _print_execution(execution: WorkflowExecution) -> None:
    typer.echo(f"Execution {execution.id}: {execution.status.value}")
    for step in execution.steps:
        line = f"- {step.name}: {step.status.value}"
        if step.retry_count:
            line += f" (retries: {step.retry_count})"
        if step.error:
            line += f" - {step.error}"
        typer.echo(line)


@app.command("define")
def define(name: str, file: Path) -> None:
    """
    Define (or overwrite) a workflow from a JSON or YAML file.

    Example:
        stepflow define my-workflow workflow.json
    """
    try:
        document = _load_document(file)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        _fail(f"Cannot read workflow file {file}: {exc}")

    workflow = _run(lambda orchestrator: orchestrator.define(name, document))
    typer.echo(f"Workflow '{workflow.name}' defined with {len(workflow.steps)} steps")


@app.command("execute")
def execute(
    name: str,
    context_json: Optional[str] = typer.Argument(None, help="JSON object of variables"),
    as_json: bool = typer.Option(False, "--json", help="Print the full execution record"),
) -> None:
    """
    Execute a workflow with an optional JSON context.

    Example:
        stepflow execute create-project '{"projectName": "my-app"}'
    """
    context: dict[str, Any] = {}
    if context_json:
        try:
            context = json.loads(context_json)
        except json.JSONDecodeError as exc:
            _fail(f"Invalid context JSON: {exc}")
        if not isinstance(context, dict):
            _fail("Context must be a JSON object")

    execution = _run(
        lambda orchestrator: orchestrator.start(name, context, raise_on_failure=False)
    )
    if as_json:
        typer.echo(execution.to_json())
    else:
        _print_execution(execution)

    if execution.status is ExecutionStatus.FAILED:
        typer.secho(
            f"Workflow '{name}' failed at step '{execution.failed_step}': {execution.error}",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)
    typer.echo(f"Workflow '{name}' {execution.status.value}")


@app.command("list")
def list_workflows() -> None:
    """List all defined workflows."""
    workflows = _run(lambda orchestrator: orchestrator.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for workflow in sorted(workflows, key=lambda wf: wf.name):
        typer.echo(f"{workflow.name}\t{len(workflow.steps)} steps\t{workflow.updated_at.isoformat()}")
        if workflow.description:
            typer.echo(f"  {workflow.description}")


@app.command("show")
def show(name: str) -> None:
    """Show a workflow definition and the context variables it references."""
    workflow = _run(lambda orchestrator: orchestrator.load(name))
    typer.echo(json.dumps(workflow.to_document(), indent=2))

    variables: list[str] = []
    for step in iter_steps(workflow.steps):
        for value in step.model_dump(exclude={"steps"}).values():
            for key in placeholders(json.dumps(value)):
                if key not in variables:
                    variables.append(key)
    if variables:
        typer.echo(f"Variables: {', '.join(variables)}")


@app.command("delete")
def delete(name: str) -> None:
    """Delete a workflow definition."""
    if not _run(lambda orchestrator: orchestrator.delete(name)):
        _fail(f"Workflow '{name}' not found")
    typer.echo(f"Workflow '{name}' deleted")


@app.command("stop")
def stop(execution_id: str) -> None:
    """Stop a running execution (cooperative: the current step finishes first)."""
    if not _run(lambda orchestrator: orchestrator.request_stop(execution_id)):
        _fail(f"Execution '{execution_id}' not found")
    typer.echo(f"Execution '{execution_id}' stopped")


@app.command("status")
def status() -> None:
    """Show active executions."""
    executions = _run(lambda orchestrator: orchestrator.get_status())
    if not executions:
        typer.echo("No active workflows")
        return
    for execution in executions:
        typer.echo(
            f"{execution.id}\t{execution.workflow_name}\t{execution.status.value}\t"
            f"started {execution.start_time.isoformat()}"
        )


@app.command("history")
def history(limit: int = typer.Option(20, help="Number of executions to show")) -> None:
    """Show recently finished executions recorded in the store."""
    executions = _run(lambda orchestrator: orchestrator.list_executions())
    if not executions:
        typer.echo("No executions recorded")
        return
    executions.sort(key=lambda e: e.start_time, reverse=True)
    for execution in executions[:limit]:
        line = f"{execution.id}\t{execution.workflow_name}\t{execution.status.value}"
        if execution.error:
            line += f"\t{execution.failed_step}: {execution.error}"
        typer.echo(line)


@app.command("init")
def init() -> None:
    """Install the predefined workflows."""
    workflows = _run(lambda orchestrator: orchestrator.install_predefined())
    typer.echo(f"Predefined workflows initialized: {', '.join(wf.name for wf in workflows)}")


def run() -> None:
    """Console entry point; usage errors exit with code 1 instead of 2."""
    try:
        code = app(standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        sys.exit(1)
    except click.exceptions.Abort:
        sys.exit(1)
    sys.exit(code if isinstance(code, int) else 0)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    run()
