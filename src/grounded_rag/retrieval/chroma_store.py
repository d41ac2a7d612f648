"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from uuid import uuid4

import chromadb

from grounded_rag.config import settings
from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import IndexedChunk, MetadataFilter, SearchResult
from grounded_rag.retry import collaborator_retry

logger = logging.getLogger(__name__)

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "in": "$in",
    "nin": "$nin",
}


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store using cosine distance.

    Each record stores ``chunk_text`` as the Chroma document and
    ``document_id`` / ``chunk_id`` / ``page_id`` as metadata.  Record ids
    are generated here.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    client:
        Pre-built Chroma client (e.g. ``chromadb.EphemeralClient()``);
        overrides *host* / *port*.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name)
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def insert(self, items: Sequence[IndexedChunk]) -> None:
        if not items:
            return
        ids = [uuid4().hex for _ in items]
        self._upsert(ids, items)

    @collaborator_retry()
    def _upsert(self, ids: list[str], items: Sequence[IndexedChunk]) -> None:
        # Upsert with fixed ids keeps a retried batch idempotent.
        self._collection.upsert(
            ids=ids,
            embeddings=[item.embedding for item in items],
            documents=[item.chunk_text for item in items],
            metadatas=[
                {
                    "document_id": item.document_id,
                    "chunk_id": item.chunk_id,
                    "page_id": item.page_id,
                }
                for item in items
            ],
        )

    @collaborator_retry()
    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchResult]:
        if self._collection.count() == 0:
            return []

        where = _build_chroma_where(filters) if filters else None
        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=k,
            where=where,
            include=["documents", "metadatas", "distances"],
        )

        hits: list[SearchResult] = []
        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for record_id, content, meta, dist in zip(ids, docs, metas, distances):
            meta = meta or {}
            # Cosine space: distance = 1 - cosine similarity.
            hits.append(
                SearchResult(
                    id=record_id,
                    document_id=str(meta.get("document_id", "")),
                    chunk_id=str(meta.get("chunk_id", "")),
                    page_id=str(meta.get("page_id", "0")),
                    chunk_text=content or "",
                    score=1.0 - float(dist),
                )
            )
        return hits

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    def delete_document(self, document_id: str) -> None:
        self._collection.delete(where={"document_id": {"$eq": document_id}})
