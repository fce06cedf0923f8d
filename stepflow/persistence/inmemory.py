"""In-memory implementation of the document store."""

from __future__ import annotations

import copy
from typing import Dict

from .repository import Document, DocumentStore


class InMemoryDocumentStore(DocumentStore):
    """Store documents in local memory.

    Useful for tests or one-off runs. Data is not persisted across process
    restarts. Documents are deep-copied on the way in and out so callers
    never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Document] = {}
        self._executions: Dict[str, Document] = {}

    # ------------------------------------------------------------------
    async def save_workflow(self, name: str, document: Document) -> None:
        self._workflows[name] = copy.deepcopy(document)

    async def load_workflow(self, name: str) -> Document | None:
        document = self._workflows.get(name)
        return copy.deepcopy(document) if document is not None else None

    async def list_workflows(self) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._workflows.values()]

    async def delete_workflow(self, name: str) -> bool:
        return self._workflows.pop(name, None) is not None

    async def save_execution(self, execution_id: str, document: Document) -> None:
        self._executions[execution_id] = copy.deepcopy(document)

    async def load_execution(self, execution_id: str) -> Document | None:
        document = self._executions.get(execution_id)
        return copy.deepcopy(document) if document is not None else None

    async def list_executions(self) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._executions.values()]
