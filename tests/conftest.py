"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import re

import numpy as np
import pytest
import structlog

from locus.db.connection import Database
from locus.db.repository import Repository
from locus.db.schema import initialize
from locus.errors import EmbeddingProviderError
from locus.graph.links import LinkStore
from locus.ingest.indexer import BackgroundIndexer, Indexer
from locus.knowledge.files import KnowledgeBase
from locus.rag.retriever import HybridRetriever

_WORD_RE = re.compile(r"[a-z0-9]+")


class FakeEmbedder:
    """Deterministic bag-of-words embedder: one hashed dimension per word.

    Texts sharing words get a positive cosine similarity; ``calls`` records
    every batch so tests can assert what was (not) re-embedded.
    """

    model = "fake/bag-of-words"

    def __init__(self, dims: int = 64) -> None:
        self.dims = dims
        self.calls: list[list[str]] = []
        self.fail = False

    def _vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dims, dtype=np.float32)
        for word in _WORD_RE.findall(text.lower()):
            slot = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dims
            vec[slot] += 1.0
        norm = np.linalg.norm(vec)
        return vec / norm if norm else vec

    def embed_many(self, texts: list[str]) -> list[np.ndarray]:
        if self.fail:
            raise EmbeddingProviderError("provider unavailable")
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_one(self, text: str) -> np.ndarray:
        return self.embed_many([text])[0]

    @property
    def embedded_texts(self) -> list[str]:
        return [t for batch in self.calls for t in batch]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".locus.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db) -> Repository:
    return Repository(tmp_db)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """The CLI configures structlog against the runner's stderr; undo that per test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def background(repo, fake_embedder):
    bg = BackgroundIndexer(Indexer(repo, fake_embedder))
    yield bg
    bg.shutdown()


@pytest.fixture
def retriever(repo, fake_embedder) -> HybridRetriever:
    return HybridRetriever(repo, fake_embedder)


@pytest.fixture
def links(repo) -> LinkStore:
    return LinkStore(repo)


@pytest.fixture
def kb(repo, background, retriever, links) -> KnowledgeBase:
    return KnowledgeBase(repo, background, retriever, links)


@pytest.fixture
def cli_env(tmp_path, monkeypatch, fake_embedder):
    """Isolated CLI runs: cwd, global config and embedding provider point at test doubles."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("locus.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.delenv("LOCUS_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("LOCUS_RERANK_MODEL", raising=False)
    monkeypatch.setenv("LOCUS_RERANK_BACKEND", "none")
    monkeypatch.setattr("locus.cli.context.EmbeddingProvider", lambda *args, **kwargs: fake_embedder)
    return tmp_path
