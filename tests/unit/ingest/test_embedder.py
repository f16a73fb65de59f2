"""Tests for the LiteLLM-backed EmbeddingProvider."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from locus.errors import EmbeddingProviderError
from locus.ingest.embedder import EmbeddingProvider


def _response(n: int, dims: int = 3) -> MagicMock:
    resp = MagicMock()
    resp.data = [{"index": i, "embedding": [float(i)] * dims} for i in range(n)]
    return resp


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def test_batch_size_validation():
    with pytest.raises(ValueError, match="batch_size"):
        EmbeddingProvider(batch_size=0)


def test_embed_many_returns_float32_vectors():
    with patch("locus.rag.llm_client.litellm.embedding", return_value=_response(2)):
        vectors = EmbeddingProvider().embed_many(["a", "b"])
    assert len(vectors) == 2
    assert vectors[1].dtype == np.float32
    assert vectors[1].tolist() == [1.0, 1.0, 1.0]


def test_embed_many_batches_requests():
    provider = EmbeddingProvider(batch_size=2)
    with patch(
        "locus.rag.llm_client.litellm.embedding",
        side_effect=lambda **kw: _response(len(kw["input"])),
    ) as mock:
        vectors = provider.embed_many(["a", "b", "c", "d", "e"])
    assert len(vectors) == 5
    assert [len(c.kwargs["input"]) for c in mock.call_args_list] == [2, 2, 1]


def test_embed_many_empty_makes_no_call():
    with patch("locus.rag.llm_client.litellm.embedding") as mock:
        assert EmbeddingProvider().embed_many([]) == []
    mock.assert_not_called()


def test_missing_key_raises_provider_error(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    with pytest.raises(EmbeddingProviderError, match="OPENAI_API_KEY"):
        EmbeddingProvider().embed_one("query")


def test_provider_exception_is_wrapped():
    with patch("locus.rag.llm_client.litellm.embedding", side_effect=RuntimeError("rate limited")):
        with pytest.raises(EmbeddingProviderError, match="rate limited"):
            EmbeddingProvider().embed_many(["a"])


def test_count_mismatch_raises():
    with patch("locus.rag.llm_client.litellm.embedding", return_value=_response(1)):
        with pytest.raises(EmbeddingProviderError, match="1 vectors for 2 texts"):
            EmbeddingProvider().embed_many(["a", "b"])
