"""
Retrieval — vector search behind a backend-agnostic interface.

Public surface
--------------
- :class:`Retriever` — embed a query and run a filtered top-k search.
- :class:`VectorStoreBase` — abstract backend (subclass for Milvus, etc.).
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`IndexedChunk`, :class:`SearchResult`, :class:`Citation`,
  :class:`Answer`, :class:`MetadataFilter` — data models.
"""

from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import (
    Answer,
    Citation,
    IndexedChunk,
    MetadataFilter,
    SearchResult,
)
from grounded_rag.retrieval.retriever import Retriever

__all__ = [
    "Answer",
    "ChromaVectorStore",
    "Citation",
    "IndexedChunk",
    "MetadataFilter",
    "Retriever",
    "SearchResult",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from grounded_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
