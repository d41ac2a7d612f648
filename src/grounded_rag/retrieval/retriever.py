"""Retriever — embed a query and run a filtered similarity search.

Usage::

    from grounded_rag.retrieval.retriever import Retriever

    retriever = Retriever(store, gateway)
    for r in retriever.search("What is the notice period?", document_ids=["d1"]):
        print(r.page_id, r.score, r.chunk_text[:80])
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from grounded_rag.config import settings
from grounded_rag.ingestion.embedder import EmbeddingGateway
from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import MetadataFilter, SearchResult

logger = logging.getLogger(__name__)


class Retriever:
    """Top-*k* cosine search over the vector index.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    embedder:
        The same gateway used at ingestion time, so queries and chunks live
        in one embedding space.
    k:
        Number of results returned by :meth:`search`.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingGateway,
        *,
        k: int = settings.top_k,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.k = k

    def search(
        self,
        query: str,
        document_ids: Iterable[str] | None = None,
    ) -> list[SearchResult]:
        """Return the best matching chunks for *query*, highest score first.

        Parameters
        ----------
        query:
            Natural-language query string.
        document_ids:
            Restrict the search to these documents.  ``None`` or empty
            searches every document.
        """
        embedding = self._embedder.embed(query)
        filters = self.build_filters(document_ids)
        hits = self._store.similarity_search(embedding, k=self.k, filters=filters)
        logger.info("Search returned %d hit(s) for %r", len(hits), query[:80])
        # sorted() is stable, so equal scores keep the index order.
        return sorted(hits, key=lambda h: h.score, reverse=True)[: self.k]

    @staticmethod
    def build_filters(document_ids: Iterable[str] | None) -> list[MetadataFilter] | None:
        ids = sorted(set(document_ids or ()))
        if not ids:
            return None
        return [MetadataFilter.one_of("document_id", ids)]
