"""Collaborator adapters and factory."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..config import StepflowConfig, load_config
from ..expressions import SafeExpressionEvaluator
from .base import (
    FileSystem,
    HttpClient,
    HttpResponse,
    NotificationSink,
    ProcessInvoker,
    ProcessResult,
)
from .filesystem import LocalFileSystem
from .http import HttpxClient
from .notification import LogNotificationSink, WebhookNotificationSink
from .process import SubprocessInvoker


@dataclass
class Adapters:
    """Bundle of collaborators handed to the step interpreter."""

    process: ProcessInvoker = field(default_factory=SubprocessInvoker)
    filesystem: FileSystem = field(default_factory=LocalFileSystem)
    http: HttpClient = field(default_factory=HttpxClient)
    evaluator: SafeExpressionEvaluator = field(default_factory=SafeExpressionEvaluator)
    notifications: NotificationSink = field(default_factory=LogNotificationSink)

    async def close(self) -> None:
        await self.http.close()


def get_adapters(config: Optional[StepflowConfig] = None) -> Adapters:
    """Factory function building the default adapters from configuration."""

    config = config or load_config()
    http = HttpxClient(timeout=config.http.timeout, verify=config.http.verify)
    if config.notifications.webhook_url:
        notifications: NotificationSink = WebhookNotificationSink(
            config.notifications.webhook_url, http
        )
    else:
        notifications = LogNotificationSink()
    return Adapters(http=http, notifications=notifications)


__all__ = [
    "Adapters",
    "FileSystem",
    "HttpClient",
    "HttpResponse",
    "HttpxClient",
    "LocalFileSystem",
    "LogNotificationSink",
    "NotificationSink",
    "ProcessInvoker",
    "ProcessResult",
    "SubprocessInvoker",
    "WebhookNotificationSink",
    "get_adapters",
]
