"""Page-marker tokenization and page tracking for chunks.

The parser paginates its markdown output with sentinel lines of the form
``{N}------------------------------------------------`` (``N`` is the
0-based page number followed by 48 hyphens).  This module

1. cleans the raw parser output,
2. tokenizes the cleaned text into marker positions and page segments, and
3. assigns a ``page_id`` to every chunk span while stripping the markers
   from the chunk text.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from grounded_rag.ingestion.chunker import ChunkSpan

PAGE_MARKER_RE = re.compile(r"\{(\d+)\}-{48}")
IMAGE_LINE_RE = re.compile(r"^\s*!\[[^\]]*\]")


@dataclass(frozen=True)
class PageMarker:
    """Position of one page marker inside the cleaned text."""

    start: int
    end: int
    page_number: int


@dataclass(frozen=True)
class PageSegment:
    """A run of text together with the page it belongs to."""

    text: str
    page_number: int


@dataclass(frozen=True)
class PagedChunk:
    """A chunk span after page tracking — markers removed, page id assigned."""

    index: int
    page_id: str
    text: str
    span: ChunkSpan


def clean_parser_output(output: str) -> str:
    """Drop blank lines and image-reference lines from parser markdown."""
    lines = (
        line
        for line in output.split("\n")
        if line.strip() and not IMAGE_LINE_RE.match(line)
    )
    return "\n".join(lines)


def find_markers(text: str) -> list[PageMarker]:
    """Return every page marker in *text* in document order."""
    return [
        PageMarker(start=m.start(), end=m.end(), page_number=int(m.group(1)))
        for m in PAGE_MARKER_RE.finditer(text)
    ]


def tokenize(text: str) -> list[PageSegment]:
    """Split *text* into ``(text_run, page_number)`` segments.

    Text before the first marker belongs to page 0.  Marker text itself is
    not part of any segment.
    """
    segments: list[PageSegment] = []
    page = 0
    cursor = 0
    for marker in find_markers(text):
        if marker.start > cursor:
            segments.append(PageSegment(text=text[cursor : marker.start], page_number=page))
        page = marker.page_number
        cursor = marker.end
    if cursor < len(text):
        segments.append(PageSegment(text=text[cursor:], page_number=page))
    return segments


def split_pages(text: str) -> list[PageSegment]:
    """Group the segments of *text* into one entry per page number.

    Segments sharing a page number are joined; pages whose text is only
    whitespace are dropped.  Order follows first appearance.
    """
    grouped: dict[int, list[str]] = {}
    for segment in tokenize(text):
        grouped.setdefault(segment.page_number, []).append(segment.text)
    pages = []
    for number, parts in grouped.items():
        content = "".join(parts).strip()
        if content:
            pages.append(PageSegment(text=content, page_number=number))
    return pages


class PageTracker:
    """Assign page ids to chunk spans using a single tokenization pass.

    Must see the spans in document order: the page of a chunk without any
    marker is carried forward from the chunks before it.
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._markers = find_markers(text)

    @property
    def markers(self) -> list[PageMarker]:
        return list(self._markers)

    def assign(self, spans: Iterable[ChunkSpan]) -> list[PagedChunk]:
        """Return one :class:`PagedChunk` per span, in the same order."""
        carried = 0
        result: list[PagedChunk] = []
        for index, span in enumerate(spans):
            numbers = sorted(
                {m.page_number for m in self._markers if span.start <= m.start < span.end}
            )
            if numbers:
                page_id = "-".join(str(n) for n in numbers)
                carried = max(carried, numbers[-1])
            else:
                page_id = str(carried)
            result.append(
                PagedChunk(index=index, page_id=page_id, text=self._strip(span), span=span)
            )
        return result

    def _strip(self, span: ChunkSpan) -> str:
        """Remove every marker overlapping *span*, including cut-off ones."""
        overlapping = [
            m for m in self._markers if m.start < span.end and m.end > span.start
        ]
        if not overlapping:
            return span.text.strip()
        pieces: list[str] = []
        cursor = span.start
        for marker in overlapping:
            if marker.start > cursor:
                pieces.append(self._text[cursor : marker.start])
            cursor = max(cursor, marker.end)
        if cursor < span.end:
            pieces.append(self._text[cursor : span.end])
        return "".join(pieces).strip()


def page_numbers(page_id: str) -> Sequence[int]:
    """Parse a ``page_id`` such as ``"2"`` or ``"2-3"`` into page numbers."""
    return [int(part) for part in page_id.split("-") if part]
