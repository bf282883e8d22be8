"""Shared pytest fixtures."""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vecmem.ingest.embedding import EmbeddingError

# Words the fake embedder gives their own dimension; other words are ignored.
VOCAB: tuple[str, ...] = (
    "intro", "hello", "world", "test", "note", "details", "project", "content",
    "alpha", "beta", "gamma", "delta", "meeting", "budget", "deploy", "session",
)

_WORD_RE = re.compile(r"[a-z]+")


class FakeEmbedder:
    """Deterministic bag-of-words embedder.

    Each vocabulary word maps to one dimension; the last dimension is a
    constant bias so no vector is all zeros. Records every call.
    """

    def __init__(self, fail: bool = False, vocab: Sequence[str] = VOCAB) -> None:
        self.fail = fail
        self.vocab = list(vocab)
        self.calls: list[list[str]] = []

    @property
    def dimension(self) -> int:
        return len(self.vocab) + 1

    def vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            if word in self.vocab:
                vec[self.vocab.index(word)] += 1.0
        vec[-1] = 1.0
        return vec

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("Embedding batch 1/1 failed (fake): rate limited")
        return [self.vector(t) for t in texts]


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace root with a ``memory/`` marker directory."""
    root = tmp_path / "workspace"
    (root / "memory").mkdir(parents=True)
    return root


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def api_key(monkeypatch):
    """Provide a dummy OpenAI key so EmbeddingClient passes its key check."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return "sk-test"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path: Path):
    """Keep the real home directory and VECMEM_* variables out of every test."""
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    for var in ("VECMEM_WORKSPACE", "VECMEM_DATA_DIR", "VECMEM_EMBEDDING_MODEL", "VECMEM_SESSIONS_DIR"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def failing_embedder() -> FakeEmbedder:
    return FakeEmbedder(fail=True)


@pytest.fixture
def mock_litellm(fake_embedder, api_key):
    """Patch litellm.embedding so EmbeddingClient gets FakeEmbedder vectors."""

    def _embedding(model, input, **kwargs):
        response = MagicMock()
        response.data = [
            {"index": i, "embedding": vec} for i, vec in enumerate(fake_embedder.embed(input))
        ]
        return response

    with patch("vecmem.ingest.embedding.litellm.embedding", side_effect=_embedding) as mock:
        yield mock


class InterleavingEmbedder(FakeEmbedder):
    """FakeEmbedder that appends a chunk to the store on its first call.

    Stands in for another writer that commits between the embed step and the
    locked merge of the run under test.
    """

    def __init__(self, data_dir: Path, chunk_id: str = "session:other:1:0") -> None:
        super().__init__()
        self.data_dir = data_dir
        self.chunk_id = chunk_id

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        vectors = super().embed(texts)
        if len(self.calls) == 1:
            # Imported here so the fixture module does not pull in the store.
            from vecmem.store.models import Chunk
            from vecmem.store.vector_store import VectorStore

            store = VectorStore(self.data_dir)
            written = Chunk(
                id=self.chunk_id,
                source=self.chunk_id.rsplit(":", 2)[0],
                text="[chat] Human: written by another process",
                vector=[1.0] * self.dimension,
            )
            store.save(store.load() + [written])
        return vectors


@pytest.fixture
def interleaving_embedder(data_dir) -> InterleavingEmbedder:
    return InterleavingEmbedder(data_dir)
