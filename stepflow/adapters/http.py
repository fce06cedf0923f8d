"""HTTP client adapter built on httpx."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from ..errors import TransportError
from .base import HttpClient, HttpResponse

logger = logging.getLogger(__name__)


class HttpxClient(HttpClient):
    """Send requests with a shared :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        timeout: float = 30.0,
        verify: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.verify = verify
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, verify=self.verify, transport=self._transport
            )
        return self._client

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        kwargs: dict[str, Any] = {"headers": dict(headers or {})}
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif body is not None:
            kwargs["content"] = str(body)
        if timeout is not None:
            kwargs["timeout"] = timeout

        logger.debug(f"HTTP {method.upper()} {url}")
        try:
            response = await self._get_client().request(method.upper(), url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method.upper()} {url} failed: {exc}") from exc

        try:
            data: Any = response.json()
        except ValueError:
            data = response.text
        return HttpResponse(
            status=response.status_code, body=data, headers=dict(response.headers)
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
