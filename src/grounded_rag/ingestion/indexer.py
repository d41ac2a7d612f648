"""Batched insertion of embedded chunks into the vector index."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass

from grounded_rag.config import settings
from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import IndexedChunk

logger = logging.getLogger(__name__)


@dataclass
class InsertProgress:
    """Observable state of one batch-insert run.

    Attributes
    ----------
    progress:
        Percentage of items inserted, ``0``–``100``.
    is_inserting:
        ``True`` while batches are being sent.
    error_message:
        Message of the batch failure that stopped the run (empty on success).
    batches_completed:
        Number of batches acknowledged by the index since the run began
        at index 0; resumed calls keep counting.
    inserted:
        Number of items acknowledged by the index, counted the same way.
    next_index:
        Position of the first item not yet inserted; pass it back as
        ``start_index`` to resume after a failure.
    """

    progress: int = 0
    is_inserting: bool = False
    error_message: str = ""
    batches_completed: int = 0
    inserted: int = 0
    next_index: int = 0

    @property
    def failed(self) -> bool:
        return bool(self.error_message)


class BatchIndexer:
    """Insert items into a :class:`VectorStoreBase` in fixed-size batches.

    Batches run sequentially and one insert sequence runs at a time per
    indexer; concurrent callers block on the indexer's lock.  Each run
    reports through its own :class:`InsertProgress`.

    Parameters
    ----------
    store:
        Target vector store.
    batch_size:
        Maximum number of items per insert call.
    """

    def __init__(self, store: VectorStoreBase, *, batch_size: int = settings.index_batch_size) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.store = store
        self.batch_size = batch_size
        self._lock = threading.Lock()
        self._last_progress = InsertProgress()

    @property
    def last_progress(self) -> InsertProgress:
        """Progress of the most recent (or currently running) insert."""
        return self._last_progress

    def insert(
        self,
        items: Sequence[IndexedChunk],
        start_index: int = 0,
        progress: InsertProgress | None = None,
    ) -> InsertProgress:
        """Insert ``items[start_index:]`` batch by batch.

        A batch failure records the error, resets progress to 0 and
        abandons the remaining batches.  Nothing is retried at this level;
        callers resume by calling again with ``progress.next_index``.
        """
        progress = progress if progress is not None else InsertProgress()
        total = len(items)

        with self._lock:
            self._last_progress = progress
            if start_index == 0:
                # Starting over: reset every counter, not just the percentage.
                progress.progress = 0
                progress.batches_completed = 0
                progress.inserted = 0
            progress.error_message = ""
            progress.next_index = start_index

            if start_index >= total:
                progress.progress = 100
                progress.is_inserting = False
                return progress

            progress.is_inserting = True
            start = start_index
            while start < total:
                end = min(start + self.batch_size, total)
                try:
                    self.store.insert(items[start:end])
                except Exception as exc:
                    progress.progress = 0
                    progress.is_inserting = False
                    progress.error_message = str(exc) or "Insert failed"
                    logger.error(
                        "Batch insert %d ~ %d of %d failed: %s", start, end, total, progress.error_message
                    )
                    return progress

                progress.batches_completed += 1
                progress.inserted += end - start
                progress.next_index = end
                progress.progress = (end * 100) // total
                logger.info("--- %d ~ %d insert done, %d%% now ---", start, end, progress.progress)
                start = end

            progress.progress = 100
            progress.is_inserting = False
            return progress
