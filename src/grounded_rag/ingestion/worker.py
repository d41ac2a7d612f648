"""Background worker pool pulling ingestion jobs from a queue.

Uploads are fire-and-forget: :meth:`IngestionWorkerPool.submit` records a
durable :class:`~grounded_rag.documents.models.IngestionJobRecord`,
enqueues its id and returns immediately.  Worker threads run the
:class:`~grounded_rag.ingestion.job.IngestionJob` for each id.

Because job records live in the document store, a restarted process can
pick up where the previous one stopped (:meth:`IngestionWorkerPool.recover`).
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime, timedelta, timezone

from grounded_rag.config import settings
from grounded_rag.documents.base import DocumentStoreBase
from grounded_rag.documents.models import DocumentStatus, IngestionJobRecord, JobState
from grounded_rag.exceptions import DocumentNotFoundError, StatusConflictError
from grounded_rag.ingestion.job import IngestionJob

logger = logging.getLogger(__name__)

_STOP = object()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class IngestionWorkerPool:
    """A fixed pool of daemon threads consuming ingestion job ids.

    Parameters
    ----------
    job:
        The pipeline runner shared by all workers.
    documents:
        Store holding documents and job records.
    workers:
        Number of worker threads.
    max_attempts:
        Attempts allowed per job before recovery gives up on it.
    processing_timeout:
        Seconds a document may stay ``processing`` before
        :meth:`reap_stale_documents` marks it failed.
    reap_interval:
        Seconds between reaper sweeps while the pool runs; ``0`` turns
        the background reaper off.
    """

    def __init__(
        self,
        job: IngestionJob,
        documents: DocumentStoreBase,
        *,
        workers: int = settings.ingestion_workers,
        max_attempts: int = settings.max_job_attempts,
        processing_timeout: float = settings.processing_timeout_seconds,
        reap_interval: float = settings.reap_interval_seconds,
    ) -> None:
        self.job = job
        self.documents = documents
        self.workers = max(1, workers)
        self.max_attempts = max(1, max_attempts)
        self.processing_timeout = processing_timeout
        self.reap_interval = reap_interval
        self._queue: queue.Queue[object] = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._reaper: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    # -- lifecycle ------------------------------------------------------------

    def start(self, *, recover: bool = True) -> None:
        """Start the worker threads, re-enqueueing unfinished jobs first.

        The stale-document reaper runs on its own thread every
        *reap_interval* seconds until :meth:`stop`.
        """
        if self.running:
            return
        if recover:
            self.recover()
        self._threads = [
            threading.Thread(target=self._worker_loop, name=f"ingest-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        self._stop_event.clear()
        if self.reap_interval > 0:
            self._reaper = threading.Thread(
                target=self._reaper_loop, name="ingest-reaper", daemon=True
            )
            self._reaper.start()
        logger.info("Started %d ingestion worker(s)", self.workers)

    def stop(self, timeout: float | None = None) -> None:
        """Ask every worker to exit after its current job and wait for them."""
        self._stop_event.set()
        if self._reaper is not None:
            self._reaper.join(timeout)
            self._reaper = None
        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def join(self) -> None:
        """Block until every enqueued job has been processed."""
        self._queue.join()

    # -- job management -------------------------------------------------------

    def submit(self, document_id: str, *, force_ocr: bool = False) -> IngestionJobRecord:
        """Record and enqueue an ingestion job for *document_id*."""
        record = self.documents.create_job(
            IngestionJobRecord(document_id=document_id, force_ocr=force_ocr)
        )
        self._queue.put(record.id)
        logger.info("Queued ingestion job %s for document %s", record.id, document_id)
        return record

    def cancel(self, job_id: str) -> bool:
        """Cancel a job that has not started yet.

        Returns ``False`` when the job is already running or finished.
        """
        try:
            record = self.documents.update_job(
                job_id, state=JobState.CANCELLED, error="Cancelled", expected=(JobState.QUEUED,)
            )
        except StatusConflictError:
            return False
        try:
            self.documents.set_status(
                record.document_id,
                DocumentStatus.FAILED,
                error="Ingestion cancelled",
                expected=(DocumentStatus.PENDING, DocumentStatus.PROCESSING),
            )
        except StatusConflictError as exc:
            logger.info("Document of cancelled job %s left as is: %s", job_id, exc)
        logger.info("Cancelled ingestion job %s", job_id)
        return True

    def cancel_document(self, document_id: str) -> bool:
        """Cancel every queued job of *document_id*.

        Returns ``False`` when one of its jobs is running, in which case
        the document cannot be touched until that run ends.
        """
        records = self.documents.list_jobs([JobState.QUEUED, JobState.RUNNING])
        idle = True
        for record in records:
            if record.document_id != document_id:
                continue
            if record.state == JobState.RUNNING or not self.cancel(record.id):
                idle = False
        return idle

    def recover(self) -> int:
        """Re-enqueue jobs left unfinished by a previous process.

        ``queued`` jobs are enqueued again.  ``running`` jobs were
        interrupted mid-run; they are retried while attempts remain,
        otherwise the job and its document are marked failed.

        Returns the number of jobs enqueued.
        """
        enqueued = 0
        for record in self.documents.list_jobs([JobState.QUEUED, JobState.RUNNING]):
            if record.state == JobState.RUNNING and record.attempts >= self.max_attempts:
                error = f"Gave up after {record.attempts} interrupted attempt(s)"
                self.documents.update_job(record.id, state=JobState.FAILED, error=error)
                self.documents.set_status(record.document_id, DocumentStatus.FAILED, error=error)
                logger.warning("Job %s abandoned: %s", record.id, error)
                continue
            if record.state == JobState.RUNNING:
                self.documents.update_job(record.id, state=JobState.QUEUED)
            self._queue.put(record.id)
            enqueued += 1
        if enqueued:
            logger.info("Recovered %d unfinished ingestion job(s)", enqueued)
        return enqueued

    def reap_stale_documents(self, now: datetime | None = None) -> list[str]:
        """Mark documents stuck in ``processing`` past the timeout as failed.

        Returns the ids of the documents that were failed.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.processing_timeout)
        reaped: list[str] = []
        for doc in self.documents.list_documents(DocumentStatus.PROCESSING):
            if _as_utc(doc.updated_at) > cutoff:
                continue
            try:
                self.documents.set_status(
                    doc.id,
                    DocumentStatus.FAILED,
                    error="Processing timed out",
                    expected=(DocumentStatus.PROCESSING,),
                )
            except (StatusConflictError, DocumentNotFoundError):
                # Finished or deleted since the listing.
                continue
            reaped.append(doc.id)
        if reaped:
            for record in self.documents.list_jobs([JobState.RUNNING]):
                if record.document_id in reaped:
                    self._finish(record.id, JobState.FAILED, "Timed out")
            logger.warning("Reaped %d stale document(s): %s", len(reaped), reaped)
        return reaped

    def process(self, job_id: str) -> IngestionJobRecord:
        """Run one queued job synchronously and return its final record.

        A job that was cancelled, reaped or picked up by another worker
        in the meantime keeps the state it already has.
        """
        record = self.documents.get_job(job_id)
        if record.state != JobState.QUEUED:
            logger.info("Skipping job %s in state %s", job_id, record.state.value)
            return record

        try:
            record = self.documents.update_job(
                job_id,
                state=JobState.RUNNING,
                attempts=record.attempts + 1,
                expected=(JobState.QUEUED,),
            )
        except StatusConflictError as exc:
            logger.info("Skipping job %s: %s", job_id, exc)
            return self.documents.get_job(job_id)

        try:
            outcome = self.job.run(record.document_id, force_ocr=record.force_ocr)
        except Exception as exc:
            logger.exception("Ingestion job %s crashed", job_id)
            return self._finish(job_id, JobState.FAILED, str(exc))

        if outcome.status == DocumentStatus.COMPLETED:
            return self._finish(job_id, JobState.SUCCEEDED)
        return self._finish(job_id, JobState.FAILED, outcome.error or "Ingestion failed")

    # -- internals ------------------------------------------------------------

    def _finish(
        self, job_id: str, state: JobState, error: str | None = None
    ) -> IngestionJobRecord:
        try:
            return self.documents.update_job(
                job_id, state=state, error=error, expected=(JobState.RUNNING,)
            )
        except StatusConflictError as exc:
            logger.warning("Job %s already settled, keeping its state: %s", job_id, exc)
            return self.documents.get_job(job_id)

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.process(str(item))
            except KeyError:
                logger.info("Job %s was removed with its document", item)
            except Exception:
                logger.exception("Worker failed to process job %s", item)
            finally:
                self._queue.task_done()

    def _reaper_loop(self) -> None:
        while not self._stop_event.wait(self.reap_interval):
            try:
                self.reap_stale_documents()
            except Exception:
                logger.exception("Stale-document sweep failed")
