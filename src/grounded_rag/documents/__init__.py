"""
Documents — relational persistence for uploads, parsed pages and jobs.

Public surface
--------------
- :class:`DocumentStoreBase` — abstract backend.
- :class:`InMemoryDocumentStore` — dict-backed store for local runs / tests.
- :class:`SqlDocumentStore` — SQLAlchemy-backed durable store.
- :func:`get_document_store` — factory driven by ``settings.database_url``.
"""

from __future__ import annotations

from grounded_rag.config import settings
from grounded_rag.documents.base import DocumentStoreBase
from grounded_rag.documents.memory_store import InMemoryDocumentStore
from grounded_rag.documents.models import (
    Document,
    DocumentStatus,
    IngestionJobRecord,
    JobState,
    Page,
)

__all__ = [
    "Document",
    "DocumentStatus",
    "DocumentStoreBase",
    "InMemoryDocumentStore",
    "IngestionJobRecord",
    "JobState",
    "Page",
    "SqlDocumentStore",
    "get_document_store",
]


def get_document_store(database_url: str | None = None) -> DocumentStoreBase:
    """Return a SQL store when a database URL is configured, else in-memory."""
    url = settings.database_url if database_url is None else database_url
    if not url:
        return InMemoryDocumentStore()
    from grounded_rag.documents.sql_store import SqlDocumentStore

    return SqlDocumentStore(url)


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import SqlDocumentStore to avoid pulling in SQLAlchemy at import time."""
    if name == "SqlDocumentStore":
        from grounded_rag.documents.sql_store import SqlDocumentStore

        return SqlDocumentStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
