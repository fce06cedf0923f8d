"""Persistence layer for stepflow documents."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepflowConfig, load_config
from .inmemory import InMemoryDocumentStore
from .jsonfile import JsonDirectoryStore
from .repository import Document, DocumentStore
from .sqlite import SQLiteDocumentStore


def get_store(
    store_url: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> DocumentStore:
    """Factory function to obtain a document store.

    The backend is selected from ``store_url`` which can be provided
    explicitly, via the ``STEPFLOW_STORE_URL`` environment variable, or from
    loaded configuration. A fresh store is built on every call; callers own
    the instance they receive.

    Supported URLs: ``memory://``, ``file://<directory>`` and
    ``sqlite://<path>``.
    """

    if store_url is None:
        config = config or load_config()
        store_url = os.getenv("STEPFLOW_STORE_URL") or config.store_url

    if store_url.startswith("memory://"):
        return InMemoryDocumentStore()
    if store_url.startswith("file://"):
        return JsonDirectoryStore(store_url.replace("file://", "", 1) or ".")
    if store_url.startswith("sqlite://"):
        path = store_url.replace("sqlite://", "", 1)
        if path and path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        return SQLiteDocumentStore(path or ":memory:")
    raise ValueError(f"Unsupported store backend: {store_url}")


__all__ = [
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonDirectoryStore",
    "SQLiteDocumentStore",
    "get_store",
]
