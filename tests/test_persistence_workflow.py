"""Execution snapshots shared through a document store."""

import asyncio

import pytest

from stepflow import ExecutionStatus, Orchestrator, WorkflowStore
from stepflow.adapters import Adapters
from stepflow.persistence import JsonDirectoryStore, SQLiteDocumentStore


def _orchestrator(documents, invoker):
    return Orchestrator(
        WorkflowStore(documents),
        adapters=Adapters(process=invoker),
        persist_executions=True,
    )


@pytest.mark.asyncio
async def test_terminal_execution_is_persisted(tmp_path, invoker):
    orchestrator = _orchestrator(SQLiteDocumentStore(tmp_path / "stepflow.db"), invoker)
    await orchestrator.define("hello", {"steps": [{"kind": "command", "command": "echo hi"}]})

    execution = await orchestrator.start("hello")

    stored = await orchestrator.get_execution(execution.id)
    assert stored.status is ExecutionStatus.COMPLETED
    assert stored.steps[0].result["output"] == "hi"
    assert [e.id for e in await orchestrator.list_executions()] == [execution.id]
    await orchestrator.close()


@pytest.mark.asyncio
async def test_stop_requested_from_another_orchestrator(tmp_path, invoker):
    runner = _orchestrator(JsonDirectoryStore(tmp_path), invoker)
    controller = _orchestrator(JsonDirectoryStore(tmp_path), invoker)
    await runner.define(
        "long",
        {
            "steps": [
                {"name": "pause", "kind": "wait", "duration": 200},
                {"name": "after", "kind": "command", "command": "echo after"},
            ]
        },
    )

    task = asyncio.create_task(runner.start("long"))
    await asyncio.sleep(0.05)

    running = await controller.get_status()
    assert [e.workflow_name for e in running] == ["long"]
    assert await controller.request_stop(running[0].id) is True

    execution = await task
    assert execution.status is ExecutionStatus.STOPPED
    assert [s.name for s in execution.steps] == ["pause"]
    assert invoker.calls == []
    assert runner.get_active() == []
    assert await controller.get_status() == []

    stored = await controller.get_execution(execution.id)
    assert stored.status is ExecutionStatus.STOPPED


@pytest.mark.asyncio
async def test_request_stop_ignores_finished_and_unknown_runs(tmp_path, invoker):
    orchestrator = _orchestrator(JsonDirectoryStore(tmp_path), invoker)
    await orchestrator.define("quick", {"steps": [{"kind": "command", "command": "echo"}]})
    execution = await orchestrator.start("quick")

    assert await orchestrator.request_stop(execution.id) is False
    assert await orchestrator.request_stop("unknown-id") is False


@pytest.mark.asyncio
async def test_cancelled_run_is_recorded_as_stopped(tmp_path, invoker):
    runner = _orchestrator(JsonDirectoryStore(tmp_path), invoker)
    await runner.define(
        "long",
        {"steps": [{"name": "pause", "kind": "wait", "duration": 5000}]},
    )

    task = asyncio.create_task(runner.start("long"))
    await asyncio.sleep(0.05)
    (running,) = await runner.get_status()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert runner.get_active() == []
    assert await runner.get_status() == []
    stored = await runner.get_execution(running.id)
    assert stored.status is ExecutionStatus.STOPPED
    assert stored.end_time is not None
    assert stored.steps[0].status.value == "stopped"
