"""Abstract base class for the relational document store.

The store owns document rows (raw bytes + status), parsed pages and
durable ingestion-job records.  Backends only implement persistence;
lifecycle rules live in :mod:`grounded_rag.ingestion.job`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from grounded_rag.documents.models import (
    Document,
    DocumentStatus,
    IngestionJobRecord,
    JobState,
    Page,
)


class DocumentStoreBase(ABC):
    """Backend-agnostic document / page / job persistence."""

    # -- documents ------------------------------------------------------------

    @abstractmethod
    def create_document(self, document: Document) -> Document:
        """Persist a new document row and return it."""
        ...

    @abstractmethod
    def get_document(self, document_id: str) -> Document:
        """Return the document or raise :class:`DocumentNotFoundError`."""
        ...

    @abstractmethod
    def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        """Return documents ordered by name, optionally filtered by status."""
        ...

    @abstractmethod
    def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
        expected: Iterable[DocumentStatus] | None = None,
    ) -> Document:
        """Update the status (and error message) of a document.

        When *expected* is given the write only happens if the current
        status is one of them; otherwise :class:`StatusConflictError` is
        raised and the row is left untouched.
        """
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        """Delete a document together with its pages and job records."""
        ...

    # -- pages ----------------------------------------------------------------

    @abstractmethod
    def add_pages(self, pages: Iterable[Page]) -> None:
        """Persist parsed pages.  Pages are immutable once written."""
        ...

    @abstractmethod
    def get_pages(self, document_id: str) -> list[Page]:
        """Return the pages of a document ordered by page number."""
        ...

    @abstractmethod
    def delete_pages(self, document_id: str) -> None:
        """Drop the pages of a document so a retried run can rewrite them."""
        ...

    # -- ingestion jobs -------------------------------------------------------

    @abstractmethod
    def create_job(self, job: IngestionJobRecord) -> IngestionJobRecord:
        ...

    @abstractmethod
    def get_job(self, job_id: str) -> IngestionJobRecord:
        ...

    @abstractmethod
    def update_job(
        self,
        job_id: str,
        *,
        state: JobState | None = None,
        attempts: int | None = None,
        error: str | None = None,
        expected: Iterable[JobState] | None = None,
    ) -> IngestionJobRecord:
        """Update a job record; *expected* guards the write like in :meth:`set_status`."""
        ...

    @abstractmethod
    def list_jobs(self, states: Iterable[JobState] | None = None) -> list[IngestionJobRecord]:
        """Return job records in creation order, optionally filtered by state."""
        ...
