"""Word-boundary aware sliding-window chunking."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from grounded_rag.config import settings


@dataclass(frozen=True)
class ChunkSpan:
    """A window ``text[start:end]`` of the source text.

    Consecutive spans overlap: the next span's ``start`` is always at or
    before the previous span's ``end``.
    """

    start: int
    end: int
    text: str


class Chunker:
    """Split cleaned text into overlapping, word-boundary respecting windows.

    Parameters
    ----------
    chunk_size:
        Target number of characters per chunk.
    chunk_overlap:
        Number of characters shared by consecutive chunks.
    lookahead:
        How far past ``start + chunk_size`` the end may move to land on a space.
    lookback:
        How far before ``start + chunk_size - chunk_overlap`` the next start
        may retreat to land just after a space.
    """

    def __init__(
        self,
        chunk_size: int = settings.chunk_size,
        chunk_overlap: int = settings.chunk_overlap,
        *,
        lookahead: int = settings.chunk_lookahead,
        lookback: int = settings.chunk_lookback,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be >= 0 and < chunk_size ({chunk_size})"
            )
        if lookahead < 0 or lookback < 0:
            raise ValueError("lookahead and lookback must be non-negative")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.lookahead = lookahead
        self.lookback = lookback

    def iter_spans(self, text: str) -> Iterator[ChunkSpan]:
        """Yield :class:`ChunkSpan` objects covering *text* from start to end."""
        length = len(text)
        start = 0
        while start < length:
            end = self._find_end(text, start)
            yield ChunkSpan(start=start, end=end, text=text[start:end])
            start = self._next_start(text, start)

    def chunk(self, text: str) -> Iterator[str]:
        """Yield the chunk strings of *text*."""
        for span in self.iter_spans(text):
            yield span.text

    # -- internals ------------------------------------------------------------

    def _find_end(self, text: str, start: int) -> int:
        length = len(text)
        end = min(start + self.chunk_size, length)
        if end >= length:
            return end
        space = text.find(" ", end, min(end + self.lookahead, length))
        return space if space != -1 else end

    def _next_start(self, text: str, start: int) -> int:
        candidate = start + self.chunk_size - self.chunk_overlap
        if candidate >= len(text):
            return candidate
        space = text.rfind(" ", max(candidate - self.lookback, 0), candidate)
        if space != -1:
            candidate = space + 1
        if candidate <= start:
            return start + self.chunk_size
        return candidate
