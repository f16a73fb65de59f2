"""Tests for the pluggable reranker."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from structlog.testing import capture_logs

from locus.errors import RerankError
from locus.rag.reranker import (
    RerankDocument,
    Reranker,
    RerankerBackend,
    parse_relevance,
    recommended_backend,
    resolve_backend,
)


def _docs(n: int = 3) -> list[RerankDocument]:
    return [RerankDocument(id=f"d{i}", text=f"document {i}", original_score=1.0 - i / 10) for i in range(n)]


def _rerank_response(pairs):
    resp = MagicMock()
    resp.results = [{"index": i, "relevance_score": s} for i, s in pairs]
    return resp


def _completion(text: str) -> MagicMock:
    resp = MagicMock()
    resp.choices[0].message.content = text
    return resp


# ------------------------------------------------------------------
# Backend selection
# ------------------------------------------------------------------


def test_recommended_backend_prefers_cohere(monkeypatch):
    monkeypatch.setenv("COHERE_API_KEY", "co")
    monkeypatch.setenv("OPENAI_API_KEY", "sk")
    assert recommended_backend() is RerankerBackend.COHERE


def test_recommended_backend_falls_back_to_llm_then_none(monkeypatch):
    monkeypatch.delenv("COHERE_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk")
    assert recommended_backend() is RerankerBackend.LLM
    monkeypatch.delenv("OPENAI_API_KEY")
    assert recommended_backend() is RerankerBackend.NONE


def test_resolve_backend():
    assert resolve_backend("llm") is RerankerBackend.LLM
    with pytest.raises(ValueError, match="Unknown reranker backend"):
        resolve_backend("bm25")


# ------------------------------------------------------------------
# none
# ------------------------------------------------------------------


def test_none_backend_preserves_order():
    results = Reranker(RerankerBackend.NONE).rerank("q", _docs(), top_k=2)
    assert [r.id for r in results] == ["d0", "d1"]
    assert [r.rank for r in results] == [1, 2]
    assert results[0].relevance_score == results[0].original_score


def test_empty_documents():
    assert Reranker(RerankerBackend.COHERE).rerank("q", [], top_k=5) == []


# ------------------------------------------------------------------
# cohere
# ------------------------------------------------------------------


def test_cohere_backend_reorders(monkeypatch):
    monkeypatch.setenv("COHERE_API_KEY", "co")
    response = _rerank_response([(0, 0.1), (2, 0.95), (1, 0.4)])
    with patch("locus.rag.llm_client.litellm.rerank", return_value=response) as mock:
        results = Reranker(RerankerBackend.COHERE).rerank("q", _docs(), top_k=3)
    assert [r.id for r in results] == ["d2", "d1", "d0"]
    assert results[0].relevance_score == 0.95
    assert results[0].original_score == pytest.approx(0.8)
    assert mock.call_args.kwargs["documents"] == ["document 0", "document 1", "document 2"]


def test_cohere_failure_raises_rerank_error(monkeypatch):
    monkeypatch.setenv("COHERE_API_KEY", "co")
    with patch("locus.rag.llm_client.litellm.rerank", side_effect=RuntimeError("503")):
        with pytest.raises(RerankError, match="503"):
            Reranker(RerankerBackend.COHERE).rerank("q", _docs(), top_k=3)


def test_cohere_out_of_range_index(monkeypatch):
    monkeypatch.setenv("COHERE_API_KEY", "co")
    with patch("locus.rag.llm_client.litellm.rerank", return_value=_rerank_response([(7, 0.9)])):
        with pytest.raises(RerankError, match="out-of-range"):
            Reranker(RerankerBackend.COHERE).rerank("q", _docs(), top_k=3)


def test_cohere_missing_key(monkeypatch):
    monkeypatch.delenv("COHERE_API_KEY", raising=False)
    with pytest.raises(RerankError, match="COHERE_API_KEY"):
        Reranker(RerankerBackend.COHERE).rerank("q", _docs(), top_k=3)


# ------------------------------------------------------------------
# llm
# ------------------------------------------------------------------


def test_llm_backend_sorts_by_parsed_score(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk")
    replies = {"document 0": "0.2", "document 1": "0.9", "document 2": "0.5"}

    def fake_completion(**kwargs):
        doc = kwargs["messages"][1]["content"].split("Document: ")[1]
        return _completion(replies[doc])

    with patch("locus.rag.llm_client.litellm.completion", side_effect=fake_completion) as mock:
        results = Reranker(RerankerBackend.LLM).rerank("q", _docs(), top_k=2)
    assert [r.id for r in results] == ["d1", "d2"]
    assert [r.relevance_score for r in results] == [0.9, 0.5]
    assert mock.call_args.kwargs["max_tokens"] == 10
    assert mock.call_args.kwargs["temperature"] == 0.0


def test_llm_failed_document_keeps_original_score(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk")

    def flaky(**kwargs):
        if "document 0" in kwargs["messages"][1]["content"]:
            raise RuntimeError("timeout")
        return _completion("0.1")

    with patch("locus.rag.llm_client.litellm.completion", side_effect=flaky):
        with capture_logs() as logs:
            results = Reranker(RerankerBackend.LLM, max_workers=1).rerank("q", _docs(), top_k=3)
    assert results[0].id == "d0"
    assert results[0].relevance_score == pytest.approx(1.0)
    warning = next(e for e in logs if e["log_level"] == "warning")
    assert warning["event"] == "Rerank scoring failed, keeping original score"
    assert warning["doc_id"] == "d0"


def test_llm_truncates_long_documents(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk")
    doc = RerankDocument(id="long", text="x" * 5000)
    with patch("locus.rag.llm_client.litellm.completion", return_value=_completion("0.5")) as mock:
        Reranker(RerankerBackend.LLM).rerank("q", [doc], top_k=1)
    content = mock.call_args.kwargs["messages"][1]["content"]
    assert content.endswith("x" * 2000 + "...")


def test_llm_missing_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RerankError, match="OPENAI_API_KEY"):
        Reranker(RerankerBackend.LLM).rerank("q", _docs(), top_k=3)


@pytest.mark.parametrize(
    "reply,expected",
    [("0.73", 0.73), (" 1 ", 1.0), ("1.7", 1.0), ("-0.2", 0.0), ("nan", 0.0), ("high", 0.0), ("", 0.0)],
)
def test_parse_relevance(reply, expected):
    assert parse_relevance(reply) == pytest.approx(expected)
