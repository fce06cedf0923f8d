"""Notification sinks."""

from __future__ import annotations

import logging

from ..contracts import NotificationSpec
from ..errors import TransportError
from .base import HttpClient, NotificationSink

logger = logging.getLogger(__name__)


class LogNotificationSink(NotificationSink):
    """Write notifications to the ``stepflow.notifications`` logger."""

    def __init__(self, logger_name: str = "stepflow.notifications") -> None:
        self._logger = logging.getLogger(logger_name)

    async def send(self, notification: NotificationSpec) -> None:
        channel = f"[{notification.channel}] " if notification.channel else ""
        self._logger.info(f"Notification: {channel}{notification.message}")


class WebhookNotificationSink(NotificationSink):
    """POST notifications as JSON to a webhook URL."""

    def __init__(self, url: str, client: HttpClient) -> None:
        self.url = url
        self._client = client

    async def send(self, notification: NotificationSpec) -> None:
        response = await self._client.send(
            "POST", self.url, body=notification.model_dump(exclude_none=True)
        )
        if not response.ok:
            raise TransportError(
                f"Webhook {self.url} rejected notification with status {response.status}"
            )
        logger.debug(f"Notification delivered to {self.url}")
