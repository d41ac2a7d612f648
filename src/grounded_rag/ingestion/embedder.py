"""Embedding gateway — uniform single / batch interface over the model."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from grounded_rag.config import settings
from grounded_rag.exceptions import EmbeddingFailure
from grounded_rag.retry import collaborator_retry

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(model_name: str | None = None) -> Embeddings:
    """Return the configured sentence-transformer embedding function.

    Vectors are mean pooled by the model and L2-normalised here so cosine
    similarity in the index is well defined.
    """
    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(
        model_name=model_name or settings.embedding_model,
        encode_kwargs={"normalize_embeddings": True},
    )


class EmbeddingGateway:
    """Wrap a LangChain :class:`Embeddings` with retry, validation and fan-out.

    Parameters
    ----------
    embeddings:
        The embedding model.  When *None* the HuggingFace model from the
        settings is loaded lazily on first use.
    dimension:
        Expected vector length; a mismatch raises :class:`EmbeddingFailure`.
        ``None`` disables the check.
    max_workers:
        Thread-pool size used by :meth:`embed_many`.
    """

    def __init__(
        self,
        embeddings: Embeddings | None = None,
        *,
        dimension: int | None = settings.embedding_dim,
        max_workers: int = settings.embedding_workers,
    ) -> None:
        self._embeddings = embeddings
        self.dimension = dimension
        self.max_workers = max(1, max_workers)

    @property
    def embeddings(self) -> Embeddings:
        if self._embeddings is None:
            self._embeddings = get_embedding_function()
        return self._embeddings

    def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises
        ------
        EmbeddingFailure
            When the model raises (after retries) or returns a vector of
            the wrong dimension.
        """
        try:
            vector = self._embed_with_retry(text)
        except Exception as exc:
            raise EmbeddingFailure(f"Embedding model failed: {exc}") from exc
        vector = [float(v) for v in vector]
        if self.dimension is not None and len(vector) != self.dimension:
            raise EmbeddingFailure(
                f"Embedding dimension {len(vector)} does not match expected {self.dimension}"
            )
        return vector

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* concurrently, returning vectors in input order.

        Results are placed by the index of their originating text, never
        by completion order.  The first failure cancels outstanding work
        and is re-raised; no partial result is returned.
        """
        if not texts:
            return []
        if self.max_workers == 1 or len(texts) == 1:
            return [self.embed(t) for t in texts]

        self.embeddings  # load the model once, before fanning out
        results: list[list[float] | None] = [None] * len(texts)
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(texts)),
            thread_name_prefix="embed",
        ) as pool:
            futures: dict[Future[list[float]], int] = {
                pool.submit(self.embed, text): idx for idx, text in enumerate(texts)
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for fut in pending:
                fut.cancel()
            for fut in done:
                exc = fut.exception()
                if exc is not None:
                    logger.error("Embedding chunk %d failed: %s", futures[fut], exc)
                    raise exc
                results[futures[fut]] = fut.result()
        logger.info("Embedded %d texts with %d workers", len(texts), self.max_workers)
        return [vec for vec in results if vec is not None]

    @collaborator_retry()
    def _embed_with_retry(self, text: str) -> list[float]:
        return self.embeddings.embed_query(text)
