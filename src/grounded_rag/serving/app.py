"""FastAPI application exposing ingestion and grounded Q&A over HTTP."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile
from pydantic import BaseModel

from grounded_rag.documents.models import DocumentStatus, IngestionJobRecord
from grounded_rag.exceptions import DocumentBusyError, DocumentNotFoundError
from grounded_rag.retrieval.models import Citation, SearchResult
from grounded_rag.service import RAGService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Grounded RAG API",
    version="0.1.0",
    description="Upload documents and ask questions answered with page-level citations.",
)


@lru_cache(maxsize=1)
def get_service() -> RAGService:
    """Build the process-wide service and start its ingestion workers."""
    service = RAGService.from_settings()
    service.start()
    return service


# ── Request / Response schemas ────────────────────────────────────────
class UploadResponse(BaseModel):
    document_id: str


class DocumentInfo(BaseModel):
    """Document metadata without the raw bytes."""

    id: str
    name: str
    format: str
    status: DocumentStatus
    error: str | None = None


class QueryRequest(BaseModel):
    """Incoming question, optionally restricted to some documents."""

    query: str
    documents: list[str] | None = None


class QueryResponse(BaseModel):
    """Answer returned to the caller."""

    text: str
    citations: list[Citation] = []
    search_results: list[SearchResult] = []


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/documents", response_model=UploadResponse)
def upload_document(
    file: UploadFile = File(...),
    force_ocr: bool = False,
    service: RAGService = Depends(get_service),
) -> UploadResponse:
    """Store an upload and queue it for ingestion."""
    content = file.file.read()
    document_id = service.ingest(
        content,
        file.filename or "upload",
        file.content_type or "application/octet-stream",
        force_ocr=force_ocr,
    )
    return UploadResponse(document_id=document_id)


@app.get("/documents", response_model=list[DocumentInfo])
def list_documents(service: RAGService = Depends(get_service)) -> list[DocumentInfo]:
    return [
        DocumentInfo(id=d.id, name=d.name, format=d.format, status=d.status, error=d.error)
        for d in service.list_documents()
    ]


@app.get("/documents/{document_id}", response_model=DocumentInfo)
def get_document(document_id: str, service: RAGService = Depends(get_service)) -> DocumentInfo:
    try:
        d = service.get_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DocumentInfo(id=d.id, name=d.name, format=d.format, status=d.status, error=d.error)


@app.get("/documents/{document_id}/content")
def get_document_content(document_id: str, service: RAGService = Depends(get_service)) -> Response:
    """Download the original upload."""
    try:
        d = service.get_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if not d.content:
        raise HTTPException(status_code=404, detail="Document has no content")
    return Response(
        content=d.content,
        media_type=d.format,
        headers={"Content-Disposition": f'attachment; filename="{d.name}"'},
    )


@app.delete("/documents/{document_id}", status_code=204)
def delete_document(document_id: str, service: RAGService = Depends(get_service)) -> Response:
    try:
        service.delete_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DocumentBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/documents/{document_id}/jobs", response_model=list[IngestionJobRecord])
def list_jobs(
    document_id: str, service: RAGService = Depends(get_service)
) -> list[IngestionJobRecord]:
    """Ingestion job records of a document, oldest first."""
    try:
        return service.list_jobs(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/jobs/{job_id}", status_code=204)
def cancel_job(job_id: str, service: RAGService = Depends(get_service)) -> Response:
    """Cancel a queued ingestion job.  Running or finished jobs answer 409."""
    try:
        cancelled = service.cancel_job(job_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Ingestion job {job_id!r} not found") from exc
    if not cancelled:
        raise HTTPException(status_code=409, detail=f"Ingestion job {job_id!r} has already started")
    return Response(status_code=204)


@app.post("/query", response_model=QueryResponse)
def query(request: QueryRequest, service: RAGService = Depends(get_service)) -> QueryResponse:
    """Retrieve context and return a grounded, cited answer."""
    answer = service.query(request.query, request.documents)
    return QueryResponse(
        text=answer.text,
        citations=answer.citations,
        search_results=answer.search_results,
    )
