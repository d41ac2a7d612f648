"""Error taxonomy for the ingestion and answering pipelines."""

from __future__ import annotations


class GroundedRAGError(Exception):
    """Base class for every error raised by this package."""


class ParseFailure(GroundedRAGError):
    """The parser service reported failure or could not be reached."""


class EmbeddingFailure(GroundedRAGError):
    """The embedding model raised or returned an unusable vector."""


class IndexFailure(GroundedRAGError):
    """A batch insert into the vector index failed."""


class AnswerParseFailure(GroundedRAGError):
    """The LLM output did not contain the expected JSON answer.

    Always recovered inside :class:`~grounded_rag.answering.synthesizer.AnswerSynthesizer`.
    """


class DocumentNotFoundError(GroundedRAGError):
    """No document with the requested id exists in the store."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id!r} not found")
        self.document_id = document_id


class StatusConflictError(GroundedRAGError):
    """A conditional status update found the record in an unexpected state."""

    def __init__(self, kind: str, record_id: str, current: str, expected: list[str]) -> None:
        super().__init__(
            f"{kind} {record_id!r} is {current!r}, expected one of {', '.join(expected)}"
        )
        self.record_id = record_id
        self.current = current
        self.expected = expected


class DocumentBusyError(GroundedRAGError):
    """The document has an ingestion job running and cannot be changed."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id!r} is being ingested")
        self.document_id = document_id
