"""Workflow execution behaviour through the orchestrator."""

import asyncio

import pytest

from stepflow import (
    ExecutionStatus,
    NotFoundError,
    Orchestrator,
    StepStatus,
    WorkflowFailed,
    WorkflowStore,
)
from stepflow.adapters import Adapters, ProcessInvoker, ProcessResult
from stepflow.contracts import StepKind
from stepflow.persistence import InMemoryDocumentStore


class FailingThenPassingInvoker(ProcessInvoker):
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def run(self, command, cwd=None, env=None):
        self.calls += 1
        exit_code = 1 if self.calls <= self.failures else 0
        return ProcessResult(exit_code=exit_code, stdout="done")


def _by_name(execution, name):
    return next(step for step in execution.steps if step.name == name)


@pytest.mark.asyncio
async def test_demo_workflow_runs_real_commands():
    orchestrator = Orchestrator(WorkflowStore(InMemoryDocumentStore()))
    await orchestrator.define(
        "demo",
        {
            "steps": [
                {"kind": "wait", "duration": 10},
                {"kind": "command", "command": "echo {{msg}}"},
            ]
        },
    )

    execution = await orchestrator.start("demo", {"msg": "hello"})

    assert execution.status is ExecutionStatus.COMPLETED
    assert len(execution.steps) == 2
    assert [s.kind for s in execution.steps] == [StepKind.WAIT, StepKind.COMMAND]
    assert "hello" in execution.steps[1].result["output"]
    assert execution.end_time is not None
    assert orchestrator.get_active() == []


@pytest.mark.asyncio
async def test_sequential_steps_run_in_declaration_order(orchestrator, invoker):
    await orchestrator.define(
        "ordered",
        {
            "steps": [
                {"name": "first", "kind": "command", "command": "echo 1"},
                {"name": "second", "kind": "command", "command": "echo 2"},
                {"name": "third", "kind": "command", "command": "echo 3"},
            ]
        },
    )

    execution = await orchestrator.start("ordered")

    assert [s.name for s in execution.steps] == ["first", "second", "third"]
    assert [c["command"] for c in invoker.calls] == ["echo 1", "echo 2", "echo 3"]
    times = [s.start_time for s in execution.steps]
    assert times == sorted(times)
    assert all(s.status is StepStatus.COMPLETED for s in execution.steps)


@pytest.mark.asyncio
async def test_stop_policy_halts_the_run(orchestrator, invoker):
    invoker.behaviours["false"] = (0, 1)
    await orchestrator.define(
        "halting",
        {
            "steps": [
                {"name": "A", "kind": "command", "command": "false", "onError": "stop"},
                {"name": "B", "kind": "command", "command": "echo never"},
            ]
        },
    )

    with pytest.raises(WorkflowFailed) as exc_info:
        await orchestrator.start("halting")

    execution = exc_info.value.execution
    assert execution.status is ExecutionStatus.FAILED
    assert [s.name for s in execution.steps] == ["A"]
    assert execution.steps[0].status is StepStatus.FAILED
    assert exc_info.value.failed_step == "A"
    assert "exited with code 1" in execution.error
    assert [c["command"] for c in invoker.calls] == ["false"]


@pytest.mark.asyncio
async def test_failed_run_can_be_returned_without_raising(orchestrator, invoker):
    invoker.behaviours["false"] = (0, 2)
    await orchestrator.define("fails", {"steps": [{"kind": "command", "command": "false"}]})

    execution = await orchestrator.start("fails", raise_on_failure=False)

    assert execution.status is ExecutionStatus.FAILED
    assert execution.failed_step == "command"
    assert execution.steps[0].result == {"success": False, "output": "", "exit_code": 2}


@pytest.mark.asyncio
async def test_continue_policy_proceeds_to_next_step(orchestrator, invoker):
    invoker.behaviours["false"] = (0, 1)
    await orchestrator.define(
        "tolerant",
        {
            "steps": [
                {"name": "A", "kind": "command", "command": "false", "onError": "continue"},
                {"name": "B", "kind": "command", "command": "echo ok"},
            ]
        },
    )

    execution = await orchestrator.start("tolerant")

    assert execution.status is ExecutionStatus.COMPLETED
    assert [(s.name, s.status) for s in execution.steps] == [
        ("A", StepStatus.FAILED),
        ("B", StepStatus.COMPLETED),
    ]
    assert execution.steps[0].error


@pytest.mark.asyncio
async def test_retry_exhaustion_attempts_max_retries_plus_one(orchestrator, invoker):
    invoker.behaviours["flaky"] = (0, 1)
    await orchestrator.define(
        "retrying",
        {
            "steps": [
                {
                    "name": "flaky",
                    "kind": "command",
                    "command": "flaky",
                    "onError": "retry",
                    "maxRetries": 2,
                    "retryDelayMs": 0,
                }
            ]
        },
    )

    with pytest.raises(WorkflowFailed) as exc_info:
        await orchestrator.start("retrying")

    assert len(invoker.calls) == 3
    record = exc_info.value.execution.steps[0]
    assert record.status is StepStatus.FAILED
    assert record.attempts == 3
    assert record.retry_count == 3


@pytest.mark.asyncio
async def test_retry_succeeds_on_later_attempt():
    orchestrator = Orchestrator(
        WorkflowStore(InMemoryDocumentStore()),
        adapters=Adapters(process=FailingThenPassingInvoker(failures=1)),
    )
    await orchestrator.define(
        "eventually",
        {
            "steps": [
                {
                    "kind": "command",
                    "command": "echo done",
                    "onError": "retry",
                    "maxRetries": 3,
                    "retryDelay": 0,
                }
            ]
        },
    )

    execution = await orchestrator.start("eventually")

    assert execution.status is ExecutionStatus.COMPLETED
    assert len(execution.steps) == 1
    assert execution.steps[0].retry_count == 1
    assert execution.steps[0].attempts == 2
    assert execution.steps[0].error is None


@pytest.mark.asyncio
async def test_parallel_waits_for_all_children(orchestrator, invoker):
    invoker.behaviours["slow"] = (0.1, 0)
    invoker.behaviours["fast-fail"] = (0.01, 1)
    await orchestrator.define(
        "fan-out",
        {
            "steps": [
                {
                    "name": "both",
                    "kind": "parallel",
                    "steps": [
                        {"name": "slow", "kind": "command", "command": "slow"},
                        {"name": "fast-fail", "kind": "command", "command": "fast-fail"},
                    ],
                }
            ]
        },
    )

    loop = asyncio.get_running_loop()
    started = loop.time()
    execution = await orchestrator.start("fan-out", raise_on_failure=False)
    elapsed = loop.time() - started

    assert elapsed >= 0.1
    parallel = _by_name(execution, "both")
    assert parallel.status is StepStatus.FAILED
    assert "1 of 2 parallel steps failed" in parallel.error
    assert _by_name(execution, "slow").status is StepStatus.COMPLETED
    assert _by_name(execution, "fast-fail").status is StepStatus.FAILED
    assert execution.failed_step == "fast-fail"


@pytest.mark.asyncio
async def test_parallel_fails_when_a_continue_child_fails(orchestrator, invoker):
    invoker.behaviours["false"] = (0, 1)
    await orchestrator.define(
        "fan-out",
        {
            "steps": [
                {
                    "name": "par",
                    "kind": "parallel",
                    "steps": [
                        {"name": "ok", "kind": "command", "command": "echo ok"},
                        {"name": "tolerated", "kind": "command", "command": "false", "onError": "continue"},
                    ],
                }
            ]
        },
    )

    execution = await orchestrator.start("fan-out", raise_on_failure=False)

    parallel = _by_name(execution, "par")
    assert parallel.status is StepStatus.FAILED
    assert parallel.result["success"] is False
    assert parallel.result["results"][1]["exit_code"] == 1
    assert "1 of 2 parallel steps failed: tolerated" in parallel.error
    assert execution.status is ExecutionStatus.FAILED
    assert execution.failed_step == "tolerated"


@pytest.mark.asyncio
async def test_parallel_fails_when_a_child_exhausts_retries(orchestrator, invoker):
    invoker.behaviours["flaky"] = (0, 1)
    await orchestrator.define(
        "fan-out",
        {
            "steps": [
                {
                    "name": "par",
                    "kind": "parallel",
                    "steps": [
                        {"name": "ok", "kind": "command", "command": "echo ok"},
                        {
                            "name": "flaky",
                            "kind": "command",
                            "command": "flaky",
                            "onError": "retry",
                            "maxRetries": 1,
                            "retryDelayMs": 0,
                        },
                    ],
                }
            ]
        },
    )

    execution = await orchestrator.start("fan-out", raise_on_failure=False)

    assert _by_name(execution, "par").status is StepStatus.FAILED
    flaky = _by_name(execution, "flaky")
    assert (flaky.status, flaky.attempts, flaky.retry_count) == (StepStatus.FAILED, 2, 2)
    assert execution.failed_step == "flaky"


@pytest.mark.asyncio
async def test_parallel_completes_when_a_retrying_child_recovers():
    orchestrator = Orchestrator(
        WorkflowStore(InMemoryDocumentStore()),
        adapters=Adapters(process=FailingThenPassingInvoker(failures=1)),
    )
    await orchestrator.define(
        "fan-out",
        {
            "steps": [
                {
                    "name": "par",
                    "kind": "parallel",
                    "steps": [
                        {"name": "pause", "kind": "wait", "duration": 1},
                        {
                            "name": "recovers",
                            "kind": "command",
                            "command": "echo done",
                            "onError": "retry",
                            "maxRetries": 2,
                            "retryDelayMs": 0,
                        },
                    ],
                }
            ]
        },
    )

    execution = await orchestrator.start("fan-out")

    assert execution.status is ExecutionStatus.COMPLETED
    parallel = _by_name(execution, "par")
    assert parallel.status is StepStatus.COMPLETED
    assert parallel.result["success"] is True
    assert _by_name(execution, "recovers").retry_count == 1


@pytest.mark.asyncio
async def test_nested_failure_reports_the_innermost_step(orchestrator, invoker):
    invoker.behaviours["false"] = (0, 1)
    await orchestrator.define(
        "nested",
        {
            "steps": [
                {
                    "name": "block",
                    "kind": "sequential",
                    "steps": [
                        {
                            "name": "fan",
                            "kind": "parallel",
                            "steps": [
                                {"name": "fine", "kind": "command", "command": "echo fine"},
                                {"name": "leaf", "kind": "command", "command": "false"},
                            ],
                        }
                    ],
                },
                {"name": "never", "kind": "command", "command": "echo never"},
            ]
        },
    )

    with pytest.raises(WorkflowFailed) as exc_info:
        await orchestrator.start("nested")

    execution = exc_info.value.execution
    assert exc_info.value.failed_step == "leaf"
    assert "leaf: Command exited with code 1: boom" in execution.error
    assert _by_name(execution, "block").status is StepStatus.FAILED
    assert _by_name(execution, "fan").status is StepStatus.FAILED
    assert "never" not in [s.name for s in execution.steps]


@pytest.mark.asyncio
async def test_sequential_failure_reports_the_leaf(orchestrator, invoker):
    invoker.behaviours["false"] = (0, 1)
    await orchestrator.define(
        "nested",
        {
            "steps": [
                {
                    "name": "block",
                    "kind": "sequential",
                    "steps": [{"name": "leaf", "kind": "command", "command": "false"}],
                }
            ]
        },
    )

    execution = await orchestrator.start("nested", raise_on_failure=False)

    assert execution.failed_step == "leaf"
    assert execution.error == "Command exited with code 1: boom"


@pytest.mark.asyncio
async def test_sequential_block_runs_children(orchestrator):
    await orchestrator.define(
        "nested",
        {
            "steps": [
                {
                    "name": "block",
                    "kind": "sequential",
                    "steps": [
                        {"name": "one", "kind": "command", "command": "echo 1"},
                        {"name": "two", "kind": "command", "command": "echo 2"},
                    ],
                }
            ]
        },
    )

    execution = await orchestrator.start("nested")

    assert [s.name for s in execution.steps] == ["block", "one", "two"]
    assert _by_name(execution, "block").result["results"][1]["output"] == "2"


@pytest.mark.asyncio
async def test_command_uses_working_directory_from_context(orchestrator, invoker):
    await orchestrator.define(
        "cwd",
        {
            "steps": [
                {"kind": "command", "command": "echo a"},
                {"kind": "command", "command": "echo b", "cwd": "{{name}}"},
            ]
        },
    )

    await orchestrator.start("cwd", {"workingDirectory": "/srv/app", "name": "pkg"})

    assert [c["cwd"] for c in invoker.calls] == ["/srv/app", "pkg"]


@pytest.mark.asyncio
async def test_condition_step_evaluates_against_context(orchestrator):
    await orchestrator.define(
        "check",
        {"steps": [{"kind": "condition", "condition": "count > 3 && env === 'dev'"}]},
    )

    execution = await orchestrator.start("check", {"count": 5, "env": "dev"})

    assert execution.steps[0].result == {"success": True, "result": True}


@pytest.mark.asyncio
async def test_condition_error_fails_the_step(orchestrator):
    await orchestrator.define(
        "bad-check", {"steps": [{"kind": "condition", "condition": "__import__('os')"}]}
    )

    execution = await orchestrator.start("bad-check", raise_on_failure=False)

    assert execution.status is ExecutionStatus.FAILED
    assert "Unsupported expression element" in execution.steps[0].error


@pytest.mark.asyncio
async def test_notification_step_renders_payload(orchestrator, notifications):
    await orchestrator.define(
        "notify",
        {
            "steps": [
                {
                    "kind": "notification",
                    "notification": {"message": "Deployed {{app}}", "channel": "ops"},
                }
            ]
        },
    )

    execution = await orchestrator.start("notify", {"app": "web"})

    assert execution.steps[0].result["message"] == "Notification sent"
    assert notifications.sent[0].message == "Deployed web"
    assert notifications.sent[0].channel == "ops"


@pytest.mark.asyncio
async def test_unknown_workflow_raises_not_found(orchestrator):
    with pytest.raises(NotFoundError):
        await orchestrator.start("missing")


@pytest.mark.asyncio
async def test_stop_cancels_before_next_step(orchestrator, invoker):
    await orchestrator.define(
        "long",
        {
            "steps": [
                {"name": "pause", "kind": "wait", "duration": 200},
                {"name": "after", "kind": "command", "command": "echo after"},
            ]
        },
    )

    task = asyncio.create_task(orchestrator.start("long"))
    await asyncio.sleep(0.05)
    active = orchestrator.get_active()
    assert len(active) == 1

    assert orchestrator.stop(active[0].id) is True
    assert orchestrator.get_active() == []

    execution = await task
    assert execution.status is ExecutionStatus.STOPPED
    assert [s.name for s in execution.steps] == ["pause"]
    assert invoker.calls == []


def test_stop_unknown_execution_returns_false(orchestrator):
    assert orchestrator.stop("does-not-exist") is False


@pytest.mark.asyncio
async def test_lifecycle_events_are_emitted(orchestrator, invoker):
    invoker.behaviours["false"] = (0, 1)
    seen = []

    async def on_step(record):
        seen.append(("step", record.name, record.status.value))

    def broken(_):
        raise RuntimeError("handler bug")

    orchestrator.on("step:completed", on_step)
    orchestrator.on("step:failed", on_step)
    orchestrator.on("workflow:completed", lambda e: seen.append(("workflow", e.status.value)))
    orchestrator.on("workflow:started", broken)

    await orchestrator.define(
        "events",
        {
            "steps": [
                {"name": "ok", "kind": "command", "command": "echo ok"},
                {"name": "bad", "kind": "command", "command": "false", "onError": "continue"},
            ]
        },
    )
    await orchestrator.start("events")

    assert seen == [
        ("step", "ok", "completed"),
        ("step", "bad", "failed"),
        ("workflow", "completed"),
    ]
