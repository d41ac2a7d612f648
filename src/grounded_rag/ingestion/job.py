"""Ingestion job — the document lifecycle state machine.

``pending → processing → {completed, failed}``

One run of :class:`IngestionJob` takes a stored document through
parse → clean → pages → chunk → page tracking → embed → index.  Every
failure after the transition to ``processing`` ends in ``failed`` with
the error message recorded on the document; a run never leaves a
document in ``processing``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import uuid4

from grounded_rag.documents.base import DocumentStoreBase
from grounded_rag.documents.models import DocumentStatus, Page
from grounded_rag.exceptions import (
    DocumentNotFoundError,
    IndexFailure,
    ParseFailure,
    StatusConflictError,
)
from grounded_rag.ingestion.chunker import Chunker
from grounded_rag.ingestion.embedder import EmbeddingGateway
from grounded_rag.ingestion.indexer import BatchIndexer, InsertProgress
from grounded_rag.ingestion.pages import (
    PagedChunk,
    PageTracker,
    clean_parser_output,
    split_pages,
)
from grounded_rag.ingestion.parser import ParserClient
from grounded_rag.retrieval.models import IndexedChunk

logger = logging.getLogger(__name__)


@dataclass
class IngestionOutcome:
    """Summary of one ingestion run."""

    document_id: str
    status: DocumentStatus
    chunks: int = 0
    pages: int = 0
    error: str | None = None
    progress: InsertProgress | None = field(default=None, repr=False)


def new_chunk_id(document_id: str) -> str:
    return f"{document_id}_{uuid4().hex}"


class IngestionJob:
    """Run the ingestion pipeline for stored documents.

    Parameters
    ----------
    documents:
        Relational store holding the document rows and pages.
    parser:
        Client for the parser service.
    embedder:
        Embedding gateway (per-chunk fan-out).
    indexer:
        Batch indexer writing to the vector store.
    chunker:
        Chunking strategy; defaults to the settings-driven :class:`Chunker`.
    """

    def __init__(
        self,
        documents: DocumentStoreBase,
        parser: ParserClient,
        embedder: EmbeddingGateway,
        indexer: BatchIndexer,
        *,
        chunker: Chunker | None = None,
    ) -> None:
        self.documents = documents
        self.parser = parser
        self.embedder = embedder
        self.indexer = indexer
        self.chunker = chunker or Chunker()

    def run(self, document_id: str, *, force_ocr: bool = False) -> IngestionOutcome:
        """Ingest one document and return the terminal outcome.

        Only ``pending`` documents, or ``processing`` ones whose earlier
        attempt was interrupted, are taken.  When the document is failed
        or deleted while the run is in flight, its result is discarded
        and the document is left as it is.

        Raises
        ------
        DocumentNotFoundError
            When *document_id* is not in the store.
        StatusConflictError
            When the document is already ``completed`` or ``failed``.
        """
        document = self.documents.set_status(
            document_id,
            DocumentStatus.PROCESSING,
            expected=(DocumentStatus.PENDING, DocumentStatus.PROCESSING),
        )
        logger.info("Ingesting document %s (%s)", document_id, document.name)

        try:
            result = self.parser.parse(
                document.content,
                document.name,
                force_ocr=force_ocr,
                mime_type=document.format,
            )
            if not result.success:
                raise ParseFailure(f"Parser failed for {document.name!r}")
            return self._index(document_id, result.output)
        except ParseFailure as exc:
            # No chunking or embedding is attempted after a parse failure.
            logger.warning("Document %s failed to parse: %s", document_id, exc)
            return self._fail(document_id, f"ParseFailure: {exc}")
        except (StatusConflictError, DocumentNotFoundError) as exc:
            logger.warning("Discarding ingestion result for document %s: %s", document_id, exc)
            self._discard_output(document_id)
            return IngestionOutcome(document_id, DocumentStatus.FAILED, error=str(exc))
        except Exception as exc:
            logger.exception("Ingestion of document %s failed", document_id)
            return self._fail(document_id, f"{type(exc).__name__}: {exc}")

    def build_chunks(self, text: str) -> list[PagedChunk]:
        """Chunk cleaned *text* and assign page ids, in document order."""
        tracker = PageTracker(text)
        return tracker.assign(self.chunker.iter_spans(text))

    # -- internals ------------------------------------------------------------

    def _fail(self, document_id: str, error: str) -> IngestionOutcome:
        try:
            self.documents.set_status(
                document_id,
                DocumentStatus.FAILED,
                error=error,
                expected=(DocumentStatus.PROCESSING,),
            )
        except (StatusConflictError, DocumentNotFoundError) as exc:
            logger.warning("Failure of document %s not recorded: %s", document_id, exc)
            self._discard_output(document_id)
        return IngestionOutcome(document_id, DocumentStatus.FAILED, error=error)

    def _discard_output(self, document_id: str) -> None:
        """Drop the pages and vectors written for *document_id*."""
        self.documents.delete_pages(document_id)
        try:
            self.indexer.store.delete_document(document_id)
        except Exception:
            logger.exception("Could not remove vectors of document %s", document_id)

    def _index(self, document_id: str, output: str) -> IngestionOutcome:
        cleaned = clean_parser_output(output)
        logger.info("Document %s was parsed (%d chars)", document_id, len(cleaned))

        if self.documents.get_pages(document_id):
            # Left by an interrupted attempt.  Vectors are only written after pages.
            logger.info("Clearing output of an earlier attempt for document %s", document_id)
            self.documents.delete_pages(document_id)
            self.indexer.store.delete_document(document_id)

        pages = [
            Page(document_id=document_id, page_number=seg.page_number, content=seg.text)
            for seg in split_pages(cleaned)
        ]
        self.documents.add_pages(pages)

        # Page ids are assigned sequentially here, before the concurrent
        # embedding step, so carry-forward never sees completion order.
        chunks = self.build_chunks(cleaned)
        logger.info("Split document %s into %d chunks", document_id, len(chunks))

        vectors = self.embedder.embed_many([c.text for c in chunks])
        items = [
            IndexedChunk(
                document_id=document_id,
                chunk_id=new_chunk_id(document_id),
                page_id=chunk.page_id,
                chunk_text=chunk.text,
                embedding=vector,
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        if items:
            logger.info(
                "Generated embeddings for all chunks: length=%d, dim=%d",
                len(items),
                len(items[0].embedding),
            )

        progress = self.indexer.insert(items)
        if progress.failed:
            raise IndexFailure(progress.error_message)

        self.documents.set_status(
            document_id, DocumentStatus.COMPLETED, expected=(DocumentStatus.PROCESSING,)
        )
        logger.info("Document %s indexed (%d chunks)", document_id, len(items))
        return IngestionOutcome(
            document_id,
            DocumentStatus.COMPLETED,
            chunks=len(items),
            pages=len(pages),
            progress=progress,
        )
