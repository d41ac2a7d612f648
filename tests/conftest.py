"""Shared pytest configuration and fixtures.

Fakes subclass the real abstractions so the pipeline runs end to end
without a parser service, an embedding model, Chroma or an LLM.
"""

from __future__ import annotations

import math
import os
import threading
from collections.abc import Sequence
from typing import Any
from unittest.mock import MagicMock

# Collaborator retries must not sleep during tests; set before any import
# of grounded_rag so the settings singleton picks these up.
os.environ.setdefault("RETRY_MIN_WAIT", "0")
os.environ.setdefault("RETRY_MAX_WAIT", "0")
os.environ.setdefault("RETRY_ATTEMPTS", "2")
os.environ.setdefault("DATABASE_URL", "")

import pytest  # noqa: E402
from langchain_core.embeddings import Embeddings  # noqa: E402

from grounded_rag.ingestion.parser import ParseResult  # noqa: E402
from grounded_rag.retrieval.base import VectorStoreBase  # noqa: E402
from grounded_rag.retrieval.models import (  # noqa: E402
    IndexedChunk,
    MetadataFilter,
    SearchResult,
)

DIM = 8
MARKER = "-" * 48


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


def page_marker(n: int) -> str:
    return "{" + str(n) + "}" + MARKER


# ── Fakes ───────────────────────────────────────────────────────────────


class FakeEmbeddings(Embeddings):
    """Deterministic bag-of-letters embeddings, L2-normalised."""

    def __init__(self, dim: int = DIM, fail_on: str | None = None) -> None:
        self.dim = dim
        self.fail_on = fail_on
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def _vector(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError("model exploded")
        vec = [0.0] * self.dim
        for ch in text.lower():
            if ch.isalpha():
                vec[ord(ch) % self.dim] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)


class FakeVectorStore(VectorStoreBase):
    """In-memory cosine store recording every insert batch."""

    def __init__(self, fail_on_batch: int | None = None) -> None:
        super().__init__("test-collection")
        self.records: list[tuple[str, IndexedChunk]] = []
        self.batches: list[int] = []
        self.fail_on_batch = fail_on_batch
        self.last_filters: list[MetadataFilter] | None = None
        self.last_k: int | None = None

    def insert(self, items: Sequence[IndexedChunk]) -> None:
        batch_no = len(self.batches)
        if self.fail_on_batch is not None and batch_no == self.fail_on_batch:
            self.batches.append(-len(items))
            raise RuntimeError(f"batch {batch_no} rejected")
        self.batches.append(len(items))
        for item in items:
            self.records.append((f"rec-{len(self.records)}", item))

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchResult]:
        self.last_filters = filters
        self.last_k = k
        allowed: set[str] | None = None
        for f in filters or []:
            if f.field == "document_id" and f.operator == "in":
                allowed = set(f.value)
        scored = []
        for rec_id, item in self.records:
            if allowed is not None and item.document_id not in allowed:
                continue
            score = sum(a * b for a, b in zip(query_embedding, item.embedding))
            scored.append(
                SearchResult(
                    id=rec_id,
                    document_id=item.document_id,
                    chunk_id=item.chunk_id,
                    page_id=item.page_id,
                    chunk_text=item.chunk_text,
                    score=score,
                )
            )
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:k]

    def health_check(self) -> bool:
        return True

    def delete_document(self, document_id: str) -> None:
        self.records = [(i, r) for i, r in self.records if r.document_id != document_id]


class FakeParser:
    """Stand-in for :class:`ParserClient` returning canned output."""

    def __init__(self, output: str = "", success: bool = True) -> None:
        self.output = output
        self.success = success
        self.calls: list[dict[str, Any]] = []

    def parse(
        self,
        content: bytes,
        filename: str,
        *,
        force_ocr: bool = False,
        mime_type: str = "application/octet-stream",
    ) -> ParseResult:
        self.calls.append({"filename": filename, "force_ocr": force_ocr, "mime_type": mime_type})
        return ParseResult(output=self.output, success=self.success)


def fake_llm(content: str) -> MagicMock:
    """Create a mock chat model whose ``invoke`` returns *content*."""
    llm = MagicMock()
    resp = MagicMock()
    resp.content = content
    llm.invoke.return_value = resp
    return llm


def make_result(i: int, page_id: str = "0", document_id: str = "doc-1", score: float = 0.9) -> SearchResult:
    return SearchResult(
        id=f"rec-{i}",
        document_id=document_id,
        chunk_id=f"{document_id}_{i}",
        page_id=page_id,
        chunk_text=f"Chunk text number {i}.",
        score=score,
    )


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()
