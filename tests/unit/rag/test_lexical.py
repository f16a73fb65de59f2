"""Tests for tokenisation, TF-IDF scoring and query typing."""

from __future__ import annotations

import math

import pytest

from locus.rag.lexical import (
    LexicalDocument,
    LexicalScorer,
    QueryType,
    SearchWeights,
    detect_query_type,
    extract_phrases,
    parse_query,
    search_weights,
    tokenize,
)


def _docs(*texts: str) -> list[LexicalDocument]:
    return [LexicalDocument(key=f"d{i}", text=t) for i, t in enumerate(texts)]


# ------------------------------------------------------------------
# Tokenisation
# ------------------------------------------------------------------


def test_tokenize_splits_compounds_and_keeps_whole():
    assert tokenize("getUserName max_tokens a") == [
        "getusername", "get", "user", "name",
        "max_tokens", "max", "tokens",
    ]


def test_tokenize_keeps_duplicates_and_drops_punctuation():
    assert tokenize("Cache, cache; (CACHE)!") == ["cache", "cache", "cache"]


def test_extract_phrases():
    phrases, remaining = extract_phrases('find "Exact Phrase" and `code_here` now')
    assert phrases == ["exact phrase", "code_here"]
    assert tokenize(remaining) == ["find", "and", "now"]


def test_parse_query_dedupes_terms():
    parsed = parse_query("index the index")
    assert parsed.terms == ["index", "the"]
    assert parsed.phrases == []


# ------------------------------------------------------------------
# Scoring
# ------------------------------------------------------------------


def test_only_matching_documents_are_returned():
    matches = LexicalScorer().score("vector", _docs("vector math", "plain text", "more words", "other"))
    assert [m.key for m in matches] == ["d0"]
    assert matches[0].matched_terms == ["vector"]


def test_term_score_formula():
    docs = _docs("vector vector vector", "alpha", "beta", "gamma")
    match = LexicalScorer().score("vector", docs)[0]
    expected = (1 + math.log(3)) * math.log(4 / 2)
    assert match.score == pytest.approx(expected)
    assert match.term_frequencies["vector"] == pytest.approx(1 + math.log(3))


def test_heading_boost_multiplies_term_score():
    docs = [
        LexicalDocument("h", "index details", heading="index"),
        LexicalDocument("p", "index details"),
        LexicalDocument("x", "unrelated"),
        LexicalDocument("y", "also unrelated"),
    ]
    by_key = {m.key: m.score for m in LexicalScorer(heading_boost=1.5).score("index", docs)}
    assert by_key["h"] == pytest.approx(by_key["p"] * 1.5)


def test_phrase_match_scores_per_word():
    docs = _docs("we hit the rate limit today", "rate and limit apart", "nothing")
    matches = LexicalScorer(phrase_boost=2.0).score('"rate limit"', docs)
    assert [m.key for m in matches] == ["d0"]
    assert matches[0].score == pytest.approx(2.0 * 2 / 2)
    assert matches[0].matched_terms == ['"rate limit"']


def test_phrase_in_heading_adds_half_boost():
    docs = [LexicalDocument("a", "rate limit", heading="Rate limit"), LexicalDocument("b", "x")]
    match = LexicalScorer(phrase_boost=2.0).score('"rate limit"', docs)[0]
    assert match.score == pytest.approx((4.0 + 1.0) / 2)


def test_ubiquitous_term_is_dropped_by_min_score():
    docs = _docs("common word", "common thing", "common stuff")
    assert LexicalScorer().score("common", docs) == []


def test_results_sorted_best_first():
    docs = _docs("graph graph graph", "graph", "tree", "leaf", "root", "node")
    scores = [m.score for m in LexicalScorer().score("graph", docs)]
    assert scores == sorted(scores, reverse=True)
    assert len(scores) == 2


@pytest.mark.parametrize("query", ["", "   ", "a"])
def test_empty_query_matches_nothing(query):
    assert LexicalScorer().score(query, _docs("some text")) == []


# ------------------------------------------------------------------
# Query typing
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "query,expected",
    [
        ("useState", QueryType.MIXED),
        ('"exact phrase"', QueryType.EXACT),
        ("What are the key differences between X and Y?", QueryType.SEMANTIC),
        ("`max_tokens`", QueryType.EXACT),
        ("ENOENT", QueryType.EXACT),
        ("ERR_CONNECTION_RESET", QueryType.EXACT),
        ("config.yaml", QueryType.EXACT),
        ("getUserProfileSettings", QueryType.EXACT),
        ("how indexing works", QueryType.SEMANTIC),
        ("notes about the embedding cache", QueryType.SEMANTIC),
        ("vector search", QueryType.MIXED),
        ("issue tracker", QueryType.MIXED),
        ("", QueryType.MIXED),
    ],
)
def test_detect_query_type(query, expected):
    assert detect_query_type(query) is expected


def test_search_weights():
    assert search_weights(QueryType.EXACT) == SearchWeights(0.3, 0.7)
    assert search_weights(QueryType.SEMANTIC) == SearchWeights(0.85, 0.15)
    assert search_weights(QueryType.MIXED) == SearchWeights(0.6, 0.4)
