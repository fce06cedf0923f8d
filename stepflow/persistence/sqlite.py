"""SQLite implementation of the document store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .repository import Document, DocumentStore


class SQLiteDocumentStore(DocumentStore):
    """Persist workflow and execution documents using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                name TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_name TEXT,
                status TEXT,
                document TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Store API
    async def save_workflow(self, name: str, document: Document) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflows (name, document, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET document = excluded.document,
                updated_at = excluded.updated_at
            """,
            name,
            json.dumps(document),
            datetime.now(timezone.utc).isoformat(),
        )

    async def load_workflow(self, name: str) -> Document | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT document FROM workflows WHERE name = ?", name
        )
        return json.loads(row["document"]) if row else None

    async def list_workflows(self) -> list[Document]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT document FROM workflows ORDER BY name"
        )
        return [json.loads(r["document"]) for r in rows]

    async def delete_workflow(self, name: str) -> bool:
        deleted = await asyncio.to_thread(
            self._execute, "DELETE FROM workflows WHERE name = ?", name
        )
        return deleted > 0

    async def save_execution(self, execution_id: str, document: Document) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO executions (id, workflow_name, status, document) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET status = excluded.status,
                document = excluded.document
            """,
            execution_id,
            document.get("workflow_name"),
            document.get("status"),
            json.dumps(document),
        )

    async def load_execution(self, execution_id: str) -> Document | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT document FROM executions WHERE id = ?", execution_id
        )
        return json.loads(row["document"]) if row else None

    async def list_executions(self) -> list[Document]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT document FROM executions ORDER BY rowid"
        )
        return [json.loads(r["document"]) for r in rows]
