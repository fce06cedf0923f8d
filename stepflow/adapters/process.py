"""Subprocess-backed process invoker."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Mapping, Optional, Sequence, Union

from ..errors import ProcessError
from .base import ProcessInvoker, ProcessResult

logger = logging.getLogger(__name__)


class SubprocessInvoker(ProcessInvoker):
    """Run commands with :mod:`asyncio` subprocesses.

    The parent environment is inherited and ``env`` entries are layered on
    top of it.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    async def run(
        self,
        command: Union[str, Sequence[str]],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        merged_env = {**os.environ, **(env or {})}
        logger.debug(f"Running {command!r} in {cwd or os.getcwd()}")
        try:
            if isinstance(command, str):
                proc = await asyncio.create_subprocess_shell(
                    command,
                    cwd=cwd,
                    env=merged_env,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            else:
                proc = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=cwd,
                    env=merged_env,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
        except OSError as exc:
            raise ProcessError(f"Failed to start {command!r}: {exc}") from exc

        stdout, stderr = await proc.communicate()
        return ProcessResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(self.encoding, errors="replace"),
            stderr=stderr.decode(self.encoding, errors="replace"),
        )
