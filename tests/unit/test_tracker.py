import threading

import pytest

from stepflow import ExecutionStatus, WorkflowExecution
from stepflow.tracker import ExecutionTracker


def test_register_and_finish():
    tracker = ExecutionTracker()
    execution = WorkflowExecution(workflow_name="wf")

    tracker.register(execution)
    assert len(tracker) == 1
    assert tracker.get(execution.id).workflow_name == "wf"

    assert tracker.finish(execution.id) is execution
    assert tracker.finish(execution.id) is None
    assert tracker.get_active() == []


def test_duplicate_registration_is_rejected():
    tracker = ExecutionTracker()
    execution = WorkflowExecution(workflow_name="wf")
    tracker.register(execution)

    with pytest.raises(ValueError):
        tracker.register(execution)


def test_get_active_returns_snapshots():
    tracker = ExecutionTracker()
    execution = WorkflowExecution(workflow_name="wf", context={"a": "1"})
    tracker.register(execution)

    snapshot = tracker.get_active()[0]
    snapshot.context["a"] = "changed"
    snapshot.status = ExecutionStatus.FAILED

    assert execution.context == {"a": "1"}
    assert execution.status is ExecutionStatus.RUNNING


def test_stop_marks_and_removes():
    tracker = ExecutionTracker()
    execution = WorkflowExecution(workflow_name="wf")
    tracker.register(execution)

    assert tracker.stop(execution.id) is True
    assert execution.status is ExecutionStatus.STOPPED
    assert execution.end_time is not None
    assert execution.is_terminal
    assert tracker.get_active() == []
    assert tracker.stop(execution.id) is False
    assert tracker.stop("unknown") is False


def test_concurrent_stops_succeed_once():
    tracker = ExecutionTracker()
    execution = WorkflowExecution(workflow_name="wf")
    tracker.register(execution)
    outcomes = []

    threads = [
        threading.Thread(target=lambda: outcomes.append(tracker.stop(execution.id)))
        for _ in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(True) == 1
