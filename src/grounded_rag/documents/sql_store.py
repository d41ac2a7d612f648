"""SQLAlchemy implementation of :class:`DocumentStoreBase`.

Works against any SQLAlchemy URL (PostgreSQL in production, SQLite for
local development).  Job records live in the same database as the
documents so ingestion survives a process restart.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from grounded_rag.documents.base import DocumentStoreBase
from grounded_rag.documents.models import (
    Document,
    DocumentStatus,
    IngestionJobRecord,
    JobState,
    Page,
)
from grounded_rag.exceptions import DocumentNotFoundError, StatusConflictError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class DocumentRow(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    format: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class PageRow(Base):
    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    document_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("documents.id", ondelete="CASCADE"), index=True
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


class IngestionJobRow(Base):
    __tablename__ = "ingestion_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    document_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("documents.id", ondelete="CASCADE"), index=True
    )
    force_ocr: Mapped[bool] = mapped_column(Boolean, default=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


def _to_document(row: DocumentRow) -> Document:
    return Document(
        id=row.id,
        name=row.name,
        format=row.format,
        content=row.content,
        status=DocumentStatus(row.status),
        error=row.error,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_job(row: IngestionJobRow) -> IngestionJobRecord:
    return IngestionJobRecord(
        id=row.id,
        document_id=row.document_id,
        force_ocr=row.force_ocr,
        state=JobState(row.state),
        attempts=row.attempts,
        error=row.error,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlDocumentStore(DocumentStoreBase):
    """Relational store backed by a SQLAlchemy engine.

    Parameters
    ----------
    engine_or_url:
        An existing :class:`~sqlalchemy.Engine` or a database URL.
    create_schema:
        Create missing tables on construction.
    """

    def __init__(self, engine_or_url: Engine | str, *, create_schema: bool = True) -> None:
        if isinstance(engine_or_url, str):
            engine_or_url = create_engine(engine_or_url, pool_pre_ping=True, echo=False)
        self.engine = engine_or_url
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(self.engine)

    def _session(self) -> Session:
        return self._sessions()

    # -- documents ------------------------------------------------------------

    def create_document(self, document: Document) -> Document:
        with self._session() as session, session.begin():
            session.add(
                DocumentRow(
                    id=document.id,
                    name=document.name,
                    format=document.format,
                    content=document.content,
                    status=document.status.value,
                    error=document.error,
                    created_at=document.created_at,
                    updated_at=document.updated_at,
                )
            )
        return document

    def get_document(self, document_id: str) -> Document:
        with self._session() as session:
            row = session.get(DocumentRow, document_id)
            if row is None:
                raise DocumentNotFoundError(document_id)
            return _to_document(row)

    def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        stmt = select(DocumentRow).order_by(DocumentRow.name.asc())
        if status is not None:
            stmt = stmt.where(DocumentRow.status == status.value)
        with self._session() as session:
            return [_to_document(row) for row in session.scalars(stmt)]

    def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
        expected: Iterable[DocumentStatus] | None = None,
    ) -> Document:
        stmt = (
            update(DocumentRow)
            .where(DocumentRow.id == document_id)
            .execution_options(synchronize_session=False)
        )
        allowed = None if expected is None else [s.value for s in expected]
        if allowed is not None:
            stmt = stmt.where(DocumentRow.status.in_(allowed))
        stmt = stmt.values(status=status.value, error=error, updated_at=_utcnow())
        with self._session() as session, session.begin():
            # Matches no row once the status has moved past *expected*.
            matched = session.execute(stmt).rowcount
            row = session.get(DocumentRow, document_id)
            if row is None:
                raise DocumentNotFoundError(document_id)
            if not matched:
                raise StatusConflictError("Document", document_id, row.status, allowed or [])
            return _to_document(row)

    def delete_document(self, document_id: str) -> None:
        with self._session() as session, session.begin():
            if session.get(DocumentRow, document_id) is None:
                raise DocumentNotFoundError(document_id)
            # SQLite does not enforce ON DELETE CASCADE without a pragma.
            session.execute(delete(PageRow).where(PageRow.document_id == document_id))
            session.execute(
                delete(IngestionJobRow).where(IngestionJobRow.document_id == document_id)
            )
            session.execute(delete(DocumentRow).where(DocumentRow.id == document_id))

    # -- pages ----------------------------------------------------------------

    def add_pages(self, pages: Iterable[Page]) -> None:
        with self._session() as session, session.begin():
            session.add_all(
                PageRow(
                    id=p.id,
                    document_id=p.document_id,
                    page_number=p.page_number,
                    content=p.content,
                )
                for p in pages
            )

    def get_pages(self, document_id: str) -> list[Page]:
        stmt = (
            select(PageRow)
            .where(PageRow.document_id == document_id)
            .order_by(PageRow.page_number.asc())
        )
        with self._session() as session:
            return [
                Page(
                    id=row.id,
                    document_id=row.document_id,
                    page_number=row.page_number,
                    content=row.content,
                )
                for row in session.scalars(stmt)
            ]

    def delete_pages(self, document_id: str) -> None:
        with self._session() as session, session.begin():
            session.execute(delete(PageRow).where(PageRow.document_id == document_id))

    # -- ingestion jobs -------------------------------------------------------

    def create_job(self, job: IngestionJobRecord) -> IngestionJobRecord:
        with self._session() as session, session.begin():
            session.add(
                IngestionJobRow(
                    id=job.id,
                    document_id=job.document_id,
                    force_ocr=job.force_ocr,
                    state=job.state.value,
                    attempts=job.attempts,
                    error=job.error,
                    created_at=job.created_at,
                    updated_at=job.updated_at,
                )
            )
        return job

    def get_job(self, job_id: str) -> IngestionJobRecord:
        with self._session() as session:
            row = session.get(IngestionJobRow, job_id)
            if row is None:
                raise KeyError(f"Ingestion job {job_id!r} not found")
            return _to_job(row)

    def update_job(
        self,
        job_id: str,
        *,
        state: JobState | None = None,
        attempts: int | None = None,
        error: str | None = None,
        expected: Iterable[JobState] | None = None,
    ) -> IngestionJobRecord:
        values: dict = {"updated_at": _utcnow()}
        if state is not None:
            values["state"] = state.value
        if attempts is not None:
            values["attempts"] = attempts
        if error is not None:
            values["error"] = error
        stmt = (
            update(IngestionJobRow)
            .where(IngestionJobRow.id == job_id)
            .execution_options(synchronize_session=False)
        )
        allowed = None if expected is None else [s.value for s in expected]
        if allowed is not None:
            stmt = stmt.where(IngestionJobRow.state.in_(allowed))
        with self._session() as session, session.begin():
            matched = session.execute(stmt.values(**values)).rowcount
            row = session.get(IngestionJobRow, job_id)
            if row is None:
                raise KeyError(f"Ingestion job {job_id!r} not found")
            if not matched:
                raise StatusConflictError("Ingestion job", job_id, row.state, allowed or [])
            return _to_job(row)

    def list_jobs(self, states: Iterable[JobState] | None = None) -> list[IngestionJobRecord]:
        stmt = select(IngestionJobRow).order_by(IngestionJobRow.created_at.asc())
        if states is not None:
            stmt = stmt.where(IngestionJobRow.state.in_([s.value for s in states]))
        with self._session() as session:
            return [_to_job(row) for row in session.scalars(stmt)]
