"""Lifecycle event emitter."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

WORKFLOW_DEFINED = "workflow:defined"
WORKFLOW_DELETED = "workflow:deleted"
WORKFLOW_STARTED = "workflow:started"
WORKFLOW_COMPLETED = "workflow:completed"
WORKFLOW_FAILED = "workflow:failed"
WORKFLOW_STOPPED = "workflow:stopped"
STEP_STARTED = "step:started"
STEP_COMPLETED = "step:completed"
STEP_FAILED = "step:failed"
STEP_RETRYING = "step:retrying"

EVENTS = frozenset(
    {
        WORKFLOW_DEFINED,
        WORKFLOW_DELETED,
        WORKFLOW_STARTED,
        WORKFLOW_COMPLETED,
        WORKFLOW_FAILED,
        WORKFLOW_STOPPED,
        STEP_STARTED,
        STEP_COMPLETED,
        STEP_FAILED,
        STEP_RETRYING,
    }
)

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]


class EventEmitter:
    """Dispatch lifecycle events to subscribed handlers.

    Handlers may be plain functions or coroutine functions. A failing handler
    is logged and skipped; it never interrupts a workflow run.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def on(self, event: str, handler: EventHandler) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, payload: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(f"Handler {handler!r} for '{event}' failed: {exc}", exc_info=True)
