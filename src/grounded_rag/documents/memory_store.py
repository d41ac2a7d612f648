"""In-memory implementation of :class:`DocumentStoreBase`."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime, timezone

from grounded_rag.documents.base import DocumentStoreBase
from grounded_rag.documents.models import (
    Document,
    DocumentStatus,
    IngestionJobRecord,
    JobState,
    Page,
)
from grounded_rag.exceptions import DocumentNotFoundError, StatusConflictError


class InMemoryDocumentStore(DocumentStoreBase):
    """Thread-safe dict-backed store used for local runs and tests.

    Records are copied on the way in and out so callers never mutate
    stored state by accident.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._documents: dict[str, Document] = {}
        self._pages: dict[str, list[Page]] = {}
        self._jobs: dict[str, IngestionJobRecord] = {}

    def create_document(self, document: Document) -> Document:
        with self._lock:
            self._documents[document.id] = document.model_copy()
        return document.model_copy()

    def get_document(self, document_id: str) -> Document:
        with self._lock:
            doc = self._documents.get(document_id)
            if doc is None:
                raise DocumentNotFoundError(document_id)
            return doc.model_copy()

    def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        with self._lock:
            docs = [d.model_copy() for d in self._documents.values()]
        if status is not None:
            docs = [d for d in docs if d.status == status]
        return sorted(docs, key=lambda d: d.name)

    def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
        expected: Iterable[DocumentStatus] | None = None,
    ) -> Document:
        with self._lock:
            doc = self._documents.get(document_id)
            if doc is None:
                raise DocumentNotFoundError(document_id)
            if expected is not None:
                _check("Document", document_id, doc.status, expected)
            updated = doc.model_copy(
                update={"status": status, "error": error, "updated_at": datetime.now(timezone.utc)}
            )
            self._documents[document_id] = updated
            return updated.model_copy()

    def delete_document(self, document_id: str) -> None:
        with self._lock:
            if self._documents.pop(document_id, None) is None:
                raise DocumentNotFoundError(document_id)
            self._pages.pop(document_id, None)
            self._jobs = {k: j for k, j in self._jobs.items() if j.document_id != document_id}

    def add_pages(self, pages: Iterable[Page]) -> None:
        with self._lock:
            for page in pages:
                self._pages.setdefault(page.document_id, []).append(page.model_copy())

    def get_pages(self, document_id: str) -> list[Page]:
        with self._lock:
            pages = [p.model_copy() for p in self._pages.get(document_id, [])]
        return sorted(pages, key=lambda p: p.page_number)

    def delete_pages(self, document_id: str) -> None:
        with self._lock:
            self._pages.pop(document_id, None)

    def create_job(self, job: IngestionJobRecord) -> IngestionJobRecord:
        with self._lock:
            self._jobs[job.id] = job.model_copy()
        return job.model_copy()

    def get_job(self, job_id: str) -> IngestionJobRecord:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(f"Ingestion job {job_id!r} not found")
            return job.model_copy()

    def update_job(
        self,
        job_id: str,
        *,
        state: JobState | None = None,
        attempts: int | None = None,
        error: str | None = None,
        expected: Iterable[JobState] | None = None,
    ) -> IngestionJobRecord:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(f"Ingestion job {job_id!r} not found")
            if expected is not None:
                _check("Ingestion job", job_id, job.state, expected)
            changes: dict = {"updated_at": datetime.now(timezone.utc)}
            if state is not None:
                changes["state"] = state
            if attempts is not None:
                changes["attempts"] = attempts
            if error is not None:
                changes["error"] = error
            updated = job.model_copy(update=changes)
            self._jobs[job_id] = updated
            return updated.model_copy()

    def list_jobs(self, states: Iterable[JobState] | None = None) -> list[IngestionJobRecord]:
        with self._lock:
            jobs = [j.model_copy() for j in self._jobs.values()]
        if states is not None:
            wanted = set(states)
            jobs = [j for j in jobs if j.state in wanted]
        return sorted(jobs, key=lambda j: j.created_at)


def _check(kind: str, record_id: str, current, expected: Iterable) -> None:
    allowed = [s.value for s in expected]
    if current.value not in allowed:
        raise StatusConflictError(kind, record_id, current.value, allowed)
