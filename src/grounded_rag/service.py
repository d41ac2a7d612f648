"""Service facade — the operations exposed to the HTTP layer and scripts.

Usage::

    from grounded_rag.service import RAGService

    service = RAGService.from_settings()
    service.start()
    doc_id = service.ingest(pdf_bytes, "report.pdf", "application/pdf")
    ...
    answer = service.query("What was the revenue?", document_ids=[doc_id])
    for c in answer.citations:
        print(c.short_ref(), c.text[:80])
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from grounded_rag.answering.synthesizer import AnswerSynthesizer
from grounded_rag.documents import get_document_store
from grounded_rag.documents.base import DocumentStoreBase
from grounded_rag.documents.models import Document, DocumentStatus, IngestionJobRecord, Page
from grounded_rag.exceptions import DocumentBusyError
from grounded_rag.ingestion.chunker import Chunker
from grounded_rag.ingestion.embedder import EmbeddingGateway
from grounded_rag.ingestion.indexer import BatchIndexer
from grounded_rag.ingestion.job import IngestionJob
from grounded_rag.ingestion.parser import ParserClient
from grounded_rag.ingestion.worker import IngestionWorkerPool
from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import Answer
from grounded_rag.retrieval.retriever import Retriever

logger = logging.getLogger(__name__)


class RAGService:
    """Wire the ingestion and answering pipelines around shared collaborators.

    Parameters
    ----------
    documents:
        Relational store for documents, pages and job records.
    vector_store:
        Vector index backend.
    embedder:
        Embedding gateway shared by ingestion and retrieval.
    parser:
        Parser-service client.
    synthesizer:
        Answer synthesizer (wraps the LLM).
    chunker:
        Optional chunking strategy override.
    workers:
        Ingestion worker threads; defaults to ``settings.ingestion_workers``.
    """

    def __init__(
        self,
        documents: DocumentStoreBase,
        vector_store: VectorStoreBase,
        embedder: EmbeddingGateway,
        parser: ParserClient,
        synthesizer: AnswerSynthesizer,
        *,
        chunker: Chunker | None = None,
        workers: int | None = None,
    ) -> None:
        self.documents = documents
        self.vector_store = vector_store
        self.indexer = BatchIndexer(vector_store)
        self.job = IngestionJob(documents, parser, embedder, self.indexer, chunker=chunker)
        pool_kwargs: dict[str, Any] = {}
        if workers is not None:
            pool_kwargs["workers"] = workers
        self.pool = IngestionWorkerPool(self.job, documents, **pool_kwargs)
        self.retriever = Retriever(vector_store, embedder)
        self.synthesizer = synthesizer

    @classmethod
    def from_settings(cls) -> RAGService:
        """Build a service from :data:`grounded_rag.config.settings`."""
        from grounded_rag.retrieval.chroma_store import ChromaVectorStore

        return cls(
            documents=get_document_store(),
            vector_store=ChromaVectorStore(),
            embedder=EmbeddingGateway(),
            parser=ParserClient(),
            synthesizer=AnswerSynthesizer(),
        )

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> None:
        self.pool.start()

    def stop(self, timeout: float | None = None) -> None:
        self.pool.stop(timeout)

    # -- ingestion ------------------------------------------------------------

    def ingest(
        self,
        content: bytes,
        name: str,
        format: str = "application/octet-stream",
        *,
        force_ocr: bool = False,
    ) -> str:
        """Store the upload and queue it for ingestion; return the document id.

        Returns as soon as the job is queued; poll :meth:`get_document`
        for the status.
        """
        document = self.documents.create_document(
            Document(name=name, format=format, content=content)
        )
        logger.info("Inserted document %s (%s, %d bytes)", document.id, name, len(content))
        self.pool.submit(document.id, force_ocr=force_ocr)
        return document.id

    def get_document(self, document_id: str) -> Document:
        return self.documents.get_document(document_id)

    def get_status(self, document_id: str) -> DocumentStatus:
        return self.documents.get_document(document_id).status

    def list_documents(self) -> list[Document]:
        return self.documents.list_documents()

    def get_pages(self, document_id: str) -> list[Page]:
        return self.documents.get_pages(document_id)

    def delete_document(self, document_id: str) -> None:
        """Delete the document row, its pages and its vectors.

        Queued ingestion jobs of the document are cancelled first.

        Raises
        ------
        DocumentNotFoundError
            When the document does not exist.
        DocumentBusyError
            When an ingestion job for the document is running.
        """
        self.documents.get_document(document_id)
        if not self.pool.cancel_document(document_id):
            raise DocumentBusyError(document_id)
        self.documents.delete_document(document_id)
        self.vector_store.delete_document(document_id)
        logger.info("Deleted document %s", document_id)

    def list_jobs(self, document_id: str) -> list[IngestionJobRecord]:
        """Return the ingestion job records of a document, oldest first."""
        self.documents.get_document(document_id)
        return [j for j in self.documents.list_jobs() if j.document_id == document_id]

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a queued ingestion job; ``False`` once it has started.

        Raises :class:`KeyError` for an unknown *job_id*.
        """
        return self.pool.cancel(job_id)

    def reap_stale_documents(self) -> list[str]:
        return self.pool.reap_stale_documents()

    # -- answering ------------------------------------------------------------

    def query(self, text: str, document_ids: Iterable[str] | None = None) -> Answer:
        """Answer *text* from the indexed documents (optionally a subset)."""
        logger.info("Querying for %r", text[:120])
        results = self.retriever.search(text, document_ids)
        return self.synthesizer.synthesize(text, results)

    def health(self) -> dict[str, bool]:
        return {
            "vector_store": self.vector_store.health_check(),
            "workers": self.pool.running,
        }
