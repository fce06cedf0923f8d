"""JSON file implementation of the document store."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from .repository import Document, DocumentStore

logger = logging.getLogger(__name__)


class JsonDirectoryStore(DocumentStore):
    """Persist one JSON file per document below ``root``.

    Layout::

        <root>/workflows/<name>.json
        <root>/executions/<execution id>.json
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.workflows_dir = self.root / "workflows"
        self.executions_dir = self.root / "executions"

    # ------------------------------------------------------------------
    # Helper methods
    @staticmethod
    def _check_key(key: str) -> str:
        if not key or key.startswith(".") or "/" in key or "\\" in key:
            raise ValueError(f"Invalid document key: {key!r}")
        return key

    def _write(self, directory: Path, key: str, document: Document) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / f"{self._check_key(key)}.json"
        fd, tmp_name = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _read(self, directory: Path, key: str) -> Document | None:
        target = directory / f"{self._check_key(key)}.json"
        if not target.exists():
            return None
        with open(target, encoding="utf-8") as f:
            return json.load(f)

    def _read_all(self, directory: Path) -> list[Document]:
        if not directory.exists():
            return []
        documents: list[Document] = []
        for path in sorted(directory.glob("*.json")):
            try:
                with open(path, encoding="utf-8") as f:
                    documents.append(json.load(f))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning(f"Skipping unreadable document {path}: {exc}")
        return documents

    def _remove(self, directory: Path, key: str) -> bool:
        target = directory / f"{self._check_key(key)}.json"
        if not target.exists():
            return False
        target.unlink()
        return True

    # ------------------------------------------------------------------
    # Store API
    async def save_workflow(self, name: str, document: Document) -> None:
        await asyncio.to_thread(self._write, self.workflows_dir, name, document)

    async def load_workflow(self, name: str) -> Document | None:
        return await asyncio.to_thread(self._read, self.workflows_dir, name)

    async def list_workflows(self) -> list[Document]:
        return await asyncio.to_thread(self._read_all, self.workflows_dir)

    async def delete_workflow(self, name: str) -> bool:
        return await asyncio.to_thread(self._remove, self.workflows_dir, name)

    async def save_execution(self, execution_id: str, document: Document) -> None:
        await asyncio.to_thread(
            self._write, self.executions_dir, execution_id, document
        )

    async def load_execution(self, execution_id: str) -> Document | None:
        return await asyncio.to_thread(self._read, self.executions_dir, execution_id)

    async def list_executions(self) -> list[Document]:
        return await asyncio.to_thread(self._read_all, self.executions_dir)
