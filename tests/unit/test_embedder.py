"""Unit tests for the embedding gateway."""

from __future__ import annotations

import math
import threading
import time

import pytest
from conftest import DIM, FakeEmbeddings
from langchain_core.embeddings import Embeddings

from grounded_rag.exceptions import EmbeddingFailure
from grounded_rag.ingestion.embedder import EmbeddingGateway


class SlowFirstEmbeddings(FakeEmbeddings):
    """Finishes early texts last, to expose ordering by completion."""

    def embed_query(self, text: str) -> list[float]:
        if text.startswith("0"):
            time.sleep(0.05)
        return super().embed_query(text)


class FlakyEmbeddings(FakeEmbeddings):
    """Raises once, then succeeds."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 0
        self._flaky_lock = threading.Lock()

    def embed_query(self, text: str) -> list[float]:
        with self._flaky_lock:
            if self.failures == 0:
                self.failures += 1
                raise ConnectionError("transient")
        return super().embed_query(text)


def test_embed_returns_unit_vector(fake_embeddings: FakeEmbeddings) -> None:
    gateway = EmbeddingGateway(fake_embeddings, dimension=DIM)
    vec = gateway.embed("hello world")
    assert len(vec) == DIM
    assert math.isclose(sum(v * v for v in vec), 1.0, rel_tol=1e-9)


def test_embed_many_preserves_input_order() -> None:
    embeddings = SlowFirstEmbeddings()
    gateway = EmbeddingGateway(embeddings, dimension=DIM, max_workers=4)
    texts = [f"{i} text about {chr(97 + i)}" for i in range(8)]
    vectors = gateway.embed_many(texts)
    assert vectors == [embeddings.embed_query(t) for t in texts]


def test_embed_many_empty() -> None:
    assert EmbeddingGateway(FakeEmbeddings(), dimension=DIM).embed_many([]) == []


def test_embed_many_sequential_path() -> None:
    embeddings = FakeEmbeddings()
    gateway = EmbeddingGateway(embeddings, dimension=DIM, max_workers=1)
    gateway.embed_many(["a", "b", "c"])
    assert embeddings.calls == ["a", "b", "c"]


def test_model_error_becomes_embedding_failure() -> None:
    gateway = EmbeddingGateway(FakeEmbeddings(fail_on="boom"), dimension=DIM, max_workers=3)
    with pytest.raises(EmbeddingFailure, match="model exploded"):
        gateway.embed_many(["fine", "boom here", "also fine"])


def test_dimension_mismatch_raises() -> None:
    gateway = EmbeddingGateway(FakeEmbeddings(dim=4), dimension=DIM)
    with pytest.raises(EmbeddingFailure, match="dimension"):
        gateway.embed("text")


def test_dimension_check_can_be_disabled() -> None:
    gateway = EmbeddingGateway(FakeEmbeddings(dim=4), dimension=None)
    assert len(gateway.embed("text")) == 4


def test_transient_error_is_retried() -> None:
    embeddings = FlakyEmbeddings()
    gateway = EmbeddingGateway(embeddings, dimension=DIM)
    assert len(gateway.embed("retry me")) == DIM
    assert embeddings.failures == 1


def test_default_model_is_loaded_lazily(monkeypatch: pytest.MonkeyPatch) -> None:
    loaded: list[bool] = []

    def _fake_factory(model_name: str | None = None) -> Embeddings:
        loaded.append(True)
        return FakeEmbeddings()

    monkeypatch.setattr("grounded_rag.ingestion.embedder.get_embedding_function", _fake_factory)
    gateway = EmbeddingGateway(dimension=DIM)
    assert loaded == []
    gateway.embed_many(["x", "y", "z"])
    assert loaded == [True]
