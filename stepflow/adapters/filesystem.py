"""Local filesystem adapter."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from .base import FileSystem


class LocalFileSystem(FileSystem):
    """Perform file operations on the local disk.

    Blocking calls are pushed to a worker thread so the event loop stays
    responsive while other branches of a ``parallel`` step run.
    """

    def __init__(self, base_path: str | Path | None = None) -> None:
        self.base_path = Path(base_path) if base_path else None

    def _resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        if self.base_path is not None and not candidate.is_absolute():
            candidate = self.base_path / candidate
        return candidate

    # ------------------------------------------------------------------
    def _read(self, path: str, encoding: str) -> str:
        return self._resolve(path).read_text(encoding=encoding)

    def _write(self, path: str, content: str, encoding: str, mode: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, mode, encoding=encoding) as f:
            f.write(content)

    def _delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
        return True

    def _copy(self, source: str, destination: str) -> None:
        src = self._resolve(source)
        dest = self._resolve(destination)
        dest.parent.mkdir(parents=True, exist_ok=True)
        if src.is_dir():
            shutil.copytree(src, dest, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dest)

    def _move(self, source: str, destination: str) -> None:
        dest = self._resolve(destination)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(self._resolve(source)), str(dest))

    # ------------------------------------------------------------------
    async def read(self, path: str, encoding: str = "utf-8") -> str:
        return await asyncio.to_thread(self._read, path, encoding)

    async def write(self, path: str, content: str, encoding: str = "utf-8") -> None:
        await asyncio.to_thread(self._write, path, content, encoding, "w")

    async def append(self, path: str, content: str, encoding: str = "utf-8") -> None:
        await asyncio.to_thread(self._write, path, content, encoding, "a")

    async def delete(self, path: str) -> bool:
        return await asyncio.to_thread(self._delete, path)

    async def copy(self, source: str, destination: str) -> None:
        await asyncio.to_thread(self._copy, source, destination)

    async def move(self, source: str, destination: str) -> None:
        await asyncio.to_thread(self._move, source, destination)
