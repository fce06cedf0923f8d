"""Shared fixtures: fake collaborators and an in-memory orchestrator."""

import asyncio

import pytest

from stepflow import Orchestrator, WorkflowStore
from stepflow.adapters import Adapters, NotificationSink, ProcessInvoker, ProcessResult
from stepflow.persistence import InMemoryDocumentStore


class FakeProcessInvoker(ProcessInvoker):
    """Pretend to run shell commands.

    ``behaviours`` maps a command string to ``(delay_seconds, exit_code)``.
    ``echo <text>`` commands print ``<text>``; everything else prints nothing.
    """

    def __init__(self, behaviours=None):
        self.behaviours = behaviours or {}
        self.calls = []

    async def run(self, command, cwd=None, env=None):
        self.calls.append({"command": command, "cwd": cwd, "env": env})
        delay, exit_code = self.behaviours.get(command, (0, 0))
        if delay:
            await asyncio.sleep(delay)
        stdout = ""
        if isinstance(command, str) and command.startswith("echo "):
            stdout = command[len("echo "):] + "\n"
        return ProcessResult(
            exit_code=exit_code, stdout=stdout, stderr="boom" if exit_code else ""
        )


class RecordingNotificationSink(NotificationSink):
    def __init__(self):
        self.sent = []

    async def send(self, notification):
        self.sent.append(notification)


@pytest.fixture
def invoker():
    return FakeProcessInvoker()


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def orchestrator(invoker, notifications):
    adapters = Adapters(process=invoker, notifications=notifications)
    return Orchestrator(WorkflowStore(InMemoryDocumentStore()), adapters=adapters)
