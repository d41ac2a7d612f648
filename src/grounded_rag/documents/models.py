"""Domain models for uploaded documents, parsed pages and ingestion jobs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Lifecycle of a document: ``pending → processing → {completed, failed}``."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


class JobState(str, Enum):
    """State of a queued ingestion job record."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Document(BaseModel):
    """An uploaded file and its ingestion status.

    Attributes
    ----------
    id:
        Opaque unique identifier, generated on upload.
    name:
        Original file name.
    format:
        MIME type reported by the uploader.
    content:
        Raw file bytes.
    status:
        Current :class:`DocumentStatus`.
    error:
        Message of the last failure, if any.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    format: str = "application/octet-stream"
    content: bytes = b""
    status: DocumentStatus = DocumentStatus.PENDING
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Page(BaseModel):
    """Text of one parsed page (0-based ``page_number``)."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    document_id: str
    page_number: int
    content: str


class IngestionJobRecord(BaseModel):
    """Durable record of one queued ingestion of a document."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    document_id: str
    force_ocr: bool = False
    state: JobState = JobState.QUEUED
    attempts: int = 0
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
