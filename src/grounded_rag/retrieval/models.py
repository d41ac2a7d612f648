"""Domain models for indexed chunks, search results and citations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"document_id"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class IndexedChunk(BaseModel):
    """One embedded chunk as handed to the vector index.

    ``page_id`` is a single page number (``"4"``) or a hyphen-joined list
    when the chunk spans several page markers (``"4-5"``).
    """

    document_id: str
    chunk_id: str
    page_id: str
    chunk_text: str
    embedding: list[float] = Field(repr=False)


class SearchResult(BaseModel):
    """A chunk returned by a similarity search, with its score."""

    id: str
    document_id: str
    chunk_id: str
    page_id: str
    chunk_text: str
    score: float

    @property
    def first_page(self) -> int:
        """Lowest stored (0-based) page number of the chunk."""
        pages = [int(p) for p in self.page_id.split("-") if p.strip().isdigit()]
        return min(pages) if pages else 0


class Citation(BaseModel):
    """Provenance record linking part of an answer to a source chunk.

    Attributes
    ----------
    document_id:
        Document the cited chunk belongs to.
    page:
        1-based page number for display.
    text:
        The cited chunk text.
    """

    document_id: str
    page: int
    text: str

    def short_ref(self) -> str:
        """Return a compact ``[document§p.page]`` reference string."""
        return f"[{self.document_id}§p.{self.page}]"


class Answer(BaseModel):
    """A grounded answer with its citations and the context it was built from."""

    text: str
    citations: list[Citation] = Field(default_factory=list)
    search_results: list[SearchResult] = Field(default_factory=list)
