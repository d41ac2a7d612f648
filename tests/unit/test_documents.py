"""Unit tests for the document stores (in-memory and SQLAlchemy/SQLite)."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from grounded_rag.documents import (
    Document,
    DocumentStatus,
    InMemoryDocumentStore,
    IngestionJobRecord,
    JobState,
    Page,
    get_document_store,
)
from grounded_rag.documents.sql_store import SqlDocumentStore
from grounded_rag.exceptions import DocumentNotFoundError, StatusConflictError


def _sqlite_store() -> SqlDocumentStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return SqlDocumentStore(engine)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return _sqlite_store()


def test_create_and_get_document(store) -> None:
    doc = store.create_document(Document(name="a.pdf", format="application/pdf", content=b"\x00\x01"))
    fetched = store.get_document(doc.id)
    assert fetched.id == doc.id
    assert fetched.name == "a.pdf"
    assert fetched.content == b"\x00\x01"
    assert fetched.status == DocumentStatus.PENDING
    assert fetched.error is None


def test_get_missing_document_raises(store) -> None:
    with pytest.raises(DocumentNotFoundError, match="missing"):
        store.get_document("missing")


def test_list_documents_ordered_by_name_and_filtered(store) -> None:
    for name in ["c.pdf", "a.pdf", "b.pdf"]:
        store.create_document(Document(name=name))
    assert [d.name for d in store.list_documents()] == ["a.pdf", "b.pdf", "c.pdf"]

    b = next(d for d in store.list_documents() if d.name == "b.pdf")
    store.set_status(b.id, DocumentStatus.PROCESSING)
    assert [d.name for d in store.list_documents(DocumentStatus.PROCESSING)] == ["b.pdf"]


def test_set_status_records_error_and_clears_it(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    failed = store.set_status(doc.id, DocumentStatus.FAILED, error="ParseFailure: boom")
    assert failed.status == DocumentStatus.FAILED
    assert store.get_document(doc.id).error == "ParseFailure: boom"

    store.set_status(doc.id, DocumentStatus.PROCESSING)
    assert store.get_document(doc.id).error is None


def test_set_status_on_missing_document(store) -> None:
    with pytest.raises(DocumentNotFoundError):
        store.set_status("missing", DocumentStatus.FAILED)


def test_guarded_set_status_keeps_a_settled_document(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    store.set_status(doc.id, DocumentStatus.FAILED, error="Processing timed out")

    with pytest.raises(StatusConflictError):
        store.set_status(doc.id, DocumentStatus.COMPLETED, expected=[DocumentStatus.PROCESSING])

    stored = store.get_document(doc.id)
    assert stored.status == DocumentStatus.FAILED
    assert stored.error == "Processing timed out"


def test_guarded_set_status_applies_when_state_matches(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    updated = store.set_status(
        doc.id,
        DocumentStatus.PROCESSING,
        expected=[DocumentStatus.PENDING, DocumentStatus.PROCESSING],
    )
    assert updated.status == DocumentStatus.PROCESSING
    assert store.get_document(doc.id).status == DocumentStatus.PROCESSING


def test_guarded_set_status_on_missing_document(store) -> None:
    with pytest.raises(DocumentNotFoundError):
        store.set_status("missing", DocumentStatus.FAILED, expected=[DocumentStatus.PROCESSING])


def test_pages_round_trip_in_page_order(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    store.add_pages(
        [
            Page(document_id=doc.id, page_number=2, content="third"),
            Page(document_id=doc.id, page_number=0, content="first"),
        ]
    )
    store.add_pages([Page(document_id=doc.id, page_number=1, content="second")])
    assert [p.content for p in store.get_pages(doc.id)] == ["first", "second", "third"]


def test_delete_pages_keeps_the_document(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    other = store.create_document(Document(name="b.pdf"))
    store.add_pages([Page(document_id=doc.id, page_number=n, content="x") for n in range(2)])
    store.add_pages([Page(document_id=other.id, page_number=0, content="y")])

    store.delete_pages(doc.id)

    assert store.get_pages(doc.id) == []
    assert [p.content for p in store.get_pages(other.id)] == ["y"]
    assert store.get_document(doc.id).name == "a.pdf"
    store.add_pages([Page(document_id=doc.id, page_number=0, content="again")])
    assert [p.content for p in store.get_pages(doc.id)] == ["again"]


def test_delete_removes_pages_and_jobs(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    other = store.create_document(Document(name="b.pdf"))
    store.add_pages([Page(document_id=doc.id, page_number=0, content="x")])
    store.create_job(IngestionJobRecord(document_id=doc.id))
    kept = store.create_job(IngestionJobRecord(document_id=other.id))

    store.delete_document(doc.id)

    with pytest.raises(DocumentNotFoundError):
        store.get_document(doc.id)
    assert store.get_pages(doc.id) == []
    assert [j.id for j in store.list_jobs()] == [kept.id]


def test_delete_missing_document_raises(store) -> None:
    with pytest.raises(DocumentNotFoundError):
        store.delete_document("missing")


def test_job_records(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    first = store.create_job(IngestionJobRecord(document_id=doc.id, force_ocr=True))
    second = store.create_job(IngestionJobRecord(document_id=doc.id))

    running = store.update_job(first.id, state=JobState.RUNNING, attempts=1)
    assert running.state == JobState.RUNNING
    assert running.attempts == 1
    assert running.force_ocr is True

    failed = store.update_job(first.id, state=JobState.FAILED, error="boom")
    assert failed.error == "boom"
    assert failed.attempts == 1

    assert [j.id for j in store.list_jobs()] == [first.id, second.id]
    assert [j.id for j in store.list_jobs([JobState.QUEUED])] == [second.id]
    assert store.get_job(second.id).state == JobState.QUEUED


def test_guarded_update_job_keeps_a_settled_job(store) -> None:
    doc = store.create_document(Document(name="a.pdf"))
    job = store.create_job(IngestionJobRecord(document_id=doc.id))
    store.update_job(job.id, state=JobState.FAILED, error="Timed out")

    with pytest.raises(StatusConflictError):
        store.update_job(job.id, state=JobState.SUCCEEDED, expected=[JobState.RUNNING])

    stored = store.get_job(job.id)
    assert stored.state == JobState.FAILED
    assert stored.error == "Timed out"


def test_missing_job_raises_key_error(store) -> None:
    with pytest.raises(KeyError):
        store.get_job("nope")
    with pytest.raises(KeyError):
        store.update_job("nope", state=JobState.FAILED)


def test_memory_store_returns_copies() -> None:
    store = InMemoryDocumentStore()
    doc = store.create_document(Document(name="a.pdf"))
    doc.name = "mutated"
    assert store.get_document(doc.id).name == "a.pdf"


def test_sql_store_survives_a_new_store_on_same_engine() -> None:
    first = _sqlite_store()
    doc = first.create_document(Document(name="durable.pdf"))
    job = first.create_job(IngestionJobRecord(document_id=doc.id))

    second = SqlDocumentStore(first.engine)
    assert second.get_document(doc.id).name == "durable.pdf"
    assert second.get_job(job.id).state == JobState.QUEUED


def test_get_document_store_factory() -> None:
    assert isinstance(get_document_store(""), InMemoryDocumentStore)
    assert isinstance(get_document_store("sqlite://"), SqlDocumentStore)
