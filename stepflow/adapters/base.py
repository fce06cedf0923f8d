"""Collaborator interfaces consumed by the step interpreter."""

from __future__ import annotations

import abc
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

from ..contracts import NotificationSpec


class ProcessResult(BaseModel):
    """Outcome of a finished subprocess."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class HttpResponse(BaseModel):
    """Status and decoded body of an HTTP response."""

    status: int
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class ProcessInvoker(metaclass=abc.ABCMeta):
    """Runs external processes for ``command`` and ``script`` steps."""

    @abc.abstractmethod
    async def run(
        self,
        command: Union[str, Sequence[str]],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        """Run ``command`` to completion.

        A string is interpreted by the shell; a sequence is executed directly
        as an argument vector.

        Raises:
            ProcessError: If the process cannot be started.
        """
        raise NotImplementedError


class FileSystem(metaclass=abc.ABCMeta):
    """Filesystem operations available to ``file`` steps."""

    @abc.abstractmethod
    async def read(self, path: str, encoding: str = "utf-8") -> str:
        raise NotImplementedError

    @abc.abstractmethod
    async def write(self, path: str, content: str, encoding: str = "utf-8") -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def append(self, path: str, content: str, encoding: str = "utf-8") -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove ``path``. Returns ``False`` when nothing existed."""
        raise NotImplementedError

    @abc.abstractmethod
    async def copy(self, source: str, destination: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def move(self, source: str, destination: str) -> None:
        raise NotImplementedError


class HttpClient(metaclass=abc.ABCMeta):
    """Issues requests for ``http`` steps."""

    @abc.abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """Send a request.

        Raises:
            TransportError: On connection or protocol failures.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release pooled connections (no-op by default)."""
        pass


class NotificationSink(metaclass=abc.ABCMeta):
    """Delivers ``notification`` step payloads."""

    @abc.abstractmethod
    async def send(self, notification: NotificationSpec) -> None:
        raise NotImplementedError
