"""Tests for HybridRetriever: fusion, fallbacks, filters and reranking."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from locus.config import SearchCfg
from locus.db.models import OwnerKind
from locus.errors import RerankError
from locus.ingest.indexer import Indexer
from locus.rag.fusion import FusionMethod
from locus.rag.lexical import QueryType
from locus.rag.reranker import RerankerBackend, RerankResult
from locus.rag.retriever import HybridRetriever, SearchOptions

NOTES = {
    "/notes/cache.md": "# Cache\n\nThe embedding cache keys vectors by content hash.",
    "/notes/graph.md": "# Graph\n\nBreadth first traversal over typed links.",
    "/notes/fusion.md": "# Fusion\n\nReciprocal rank fusion merges lexical and semantic rankings.",
    "/notes/chunks.md": "# Chunking\n\nHeadings split documents into overlapping chunks.",
}


@pytest.fixture
def indexed(repo, fake_embedder):
    indexer = Indexer(repo, fake_embedder)
    for path, text in NOTES.items():
        indexer.index(OwnerKind.KNOWLEDGE, path, text)
    return indexer


@pytest.fixture
def retriever(repo, fake_embedder, indexed):
    return HybridRetriever(repo, fake_embedder)


def test_best_match_first(retriever):
    results = retriever.search("embedding cache")
    assert results[0].owner_id == "/notes/cache.md"
    assert results[0].heading_path == "Cache"
    assert results[0].fusion_method is FusionMethod.RRF
    assert results[0].lexical_rank == 1
    assert results[0].semantic_rank == 1
    assert "cache" in results[0].matched_terms


def test_at_most_top_k_in_descending_order(retriever):
    results = retriever.search("fusion of rankings", SearchOptions(top_k=2))
    assert len(results) == 2
    assert results[0].score >= results[1].score


def test_configured_top_k(repo, fake_embedder, indexed):
    retriever = HybridRetriever(repo, fake_embedder, SearchCfg(top_k=1))
    assert len(retriever.search("typed links")) == 1


def test_rrf_scores_only_from_rankings(retriever):
    results = retriever.search("embedding cache")
    top = results[0]
    assert top.score == pytest.approx(2 / 61)


def test_lexical_only_when_query_embedding_fails(retriever, fake_embedder):
    fake_embedder.fail = True
    with capture_logs() as logs:
        results = retriever.search("embedding cache")
    assert [r.owner_id for r in results] == ["/notes/cache.md"]
    assert results[0].semantic_score == 0.0
    assert results[0].semantic_rank is None
    assert results[0].score == pytest.approx(results[0].lexical_score)
    assert any(e["log_level"] == "warning" for e in logs)


def test_semantic_weight_selects_weighted_fusion(retriever):
    results = retriever.search("embedding cache", SearchOptions(semantic_weight=0.5))
    assert results[0].owner_id == "/notes/cache.md"
    assert results[0].fusion_method is FusionMethod.WEIGHTED
    assert all(r.score >= 0.2 for r in results)


def test_explicit_threshold(retriever):
    assert retriever.search("embedding cache", SearchOptions(threshold=1.0)) == []


def test_query_type_is_reported(retriever):
    results = retriever.search('"content hash"')
    assert results[0].query_type is QueryType.EXACT
    assert results[0].owner_id == "/notes/cache.md"


def test_owner_filter(retriever):
    results = retriever.search("embedding cache", SearchOptions(owner_ids=["/notes/graph.md"]))
    assert results
    assert {r.owner_id for r in results} == {"/notes/graph.md"}


def test_kinds_are_searched_separately(repo, fake_embedder, indexed):
    indexed.index(OwnerKind.DOCUMENT, "doc-1", "# Manual\n\nThe embedding cache in depth.")
    retriever = HybridRetriever(repo, fake_embedder)
    docs = retriever.search("embedding cache", OwnerKind.DOCUMENT, titles={"doc-1": "manual.md"})
    assert [r.owner_id for r in docs] == ["doc-1"]
    assert docs[0].title == "manual.md"
    assert "doc-1" not in {r.owner_id for r in retriever.search("embedding cache")}


@pytest.mark.parametrize("query", ["", "   "])
def test_blank_query(retriever, query):
    assert retriever.search(query) == []


def test_empty_collection(repo, fake_embedder):
    assert HybridRetriever(repo, fake_embedder).search("anything") == []
    assert fake_embedder.calls == []


# ------------------------------------------------------------------
# Reranking
# ------------------------------------------------------------------


def _mock_reranker(backend=RerankerBackend.COHERE):
    reranker = MagicMock()
    reranker.backend = backend
    return reranker


def test_rerank_reorders(repo, fake_embedder, indexed):
    reranker = _mock_reranker()

    def reverse(query, docs, top_k):
        return [
            RerankResult(d.id, d.text, relevance_score=0.9 - i / 10, original_score=d.original_score, rank=i + 1)
            for i, d in enumerate(reversed(docs))
        ][:top_k]

    reranker.rerank.side_effect = reverse
    retriever = HybridRetriever(repo, fake_embedder, reranker=reranker)
    fused = retriever.search("embedding cache", SearchOptions(top_k=4))
    reranked = retriever.search("embedding cache", SearchOptions(top_k=4, rerank=True))

    assert [r.owner_id for r in reranked] == [r.owner_id for r in reversed(fused)]
    assert reranked[0].score == pytest.approx(0.9)
    assert all(r.reranked for r in reranked)


def test_rerank_failure_keeps_fused_order(repo, fake_embedder, indexed):
    reranker = _mock_reranker()
    reranker.rerank.side_effect = RerankError("down")
    retriever = HybridRetriever(repo, fake_embedder, reranker=reranker)

    fused = retriever.search("embedding cache", SearchOptions(top_k=3))
    with capture_logs() as logs:
        reranked = retriever.search("embedding cache", SearchOptions(top_k=3, rerank=True))

    assert [r.owner_id for r in reranked] == [r.owner_id for r in fused]
    assert not any(r.reranked for r in reranked)
    assert any("Rerank failed" in e["event"] for e in logs)


def test_rerank_receives_retrieve_k_candidates(repo, fake_embedder, indexed):
    reranker = _mock_reranker(RerankerBackend.NONE)
    reranker.rerank.return_value = []
    retriever = HybridRetriever(repo, fake_embedder, reranker=reranker)
    retriever.search("embedding cache", SearchOptions(top_k=1, rerank=True, retrieve_k=3))
    _, docs, top_k = reranker.rerank.call_args.args
    assert len(docs) == 3
    assert top_k == 1


def test_rerank_flag_without_reranker(retriever):
    results = retriever.search("embedding cache", SearchOptions(top_k=2, rerank=True))
    assert len(results) == 2
    assert not results[0].reranked
