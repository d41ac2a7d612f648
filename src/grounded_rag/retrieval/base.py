"""Vector-index interface shared by ingestion and retrieval.

The :class:`~grounded_rag.ingestion.indexer.BatchIndexer` writes through
:meth:`VectorStoreBase.insert`; the
:class:`~grounded_rag.retrieval.retriever.Retriever` reads through
:meth:`VectorStoreBase.similarity_search`.  A Milvus or pgvector backend
only has to subclass this.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from grounded_rag.retrieval.models import IndexedChunk, MetadataFilter, SearchResult


class VectorStoreBase(ABC):
    """A collection of embedded chunks searchable by cosine similarity.

    Parameters
    ----------
    collection_name:
        Name of the backend collection holding the chunks.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    @abstractmethod
    def insert(self, items: Sequence[IndexedChunk]) -> None:
        """Write one batch of chunks, generating a record id for each.

        Must raise when the batch is rejected so the indexer can stop.
        """

    @abstractmethod
    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchResult]:
        """Return at most *k* chunks, most similar first.

        *filters* are evaluated by the backend, e.g. ``document_id in [...]``.
        """

    @abstractmethod
    def health_check(self) -> bool:
        """Report whether the backend answers."""

    def delete_document(self, document_id: str) -> None:
        """Remove all chunks of *document_id*."""
        raise NotImplementedError(f"{type(self).__name__} cannot delete chunks")
