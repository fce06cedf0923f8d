"""Document store abstraction for workflow definitions and execution snapshots."""

from __future__ import annotations

from typing import Any, Protocol

Document = dict[str, Any]


class DocumentStore(Protocol):
    """Protocol for JSON document persistence backends."""

    async def save_workflow(self, name: str, document: Document) -> None:
        """Create or overwrite the workflow document stored under ``name``."""

    async def load_workflow(self, name: str) -> Document | None:
        """Return the workflow document or ``None`` when absent."""

    async def list_workflows(self) -> list[Document]:
        """Return every stored workflow document."""

    async def delete_workflow(self, name: str) -> bool:
        """Remove a workflow document, returning whether it existed."""

    async def save_execution(self, execution_id: str, document: Document) -> None:
        """Persist a snapshot of an execution record."""

    async def load_execution(self, execution_id: str) -> Document | None:
        """Return an execution snapshot or ``None`` when absent."""

    async def list_executions(self) -> list[Document]:
        """Return all persisted execution snapshots."""
