"""Rank fusion for hybrid search.

Reciprocal Rank Fusion (default):
  score(d) = Σ 1 / (k + rank_i(d))   over the rankings d appears in, k = 60

Weighted fusion:
  score(d) = semantic(d) * w_sem + minmax(lexical)(d) * w_lex
"""

from __future__ import annotations

from enum import Enum

from locus.rag.lexical import SearchWeights

RRF_K = 60


class FusionMethod(str, Enum):
    RRF = "rrf"
    WEIGHTED = "weighted"

    @property
    def default_threshold(self) -> float:
        return 0.0 if self is FusionMethod.RRF else 0.2


def rank(scores: dict[str, float]) -> dict[str, int]:
    """1-based ranks by descending score; ties keep insertion order."""
    ordered = sorted(scores, key=lambda key: scores[key], reverse=True)
    return {key: i + 1 for i, key in enumerate(ordered)}


def rrf_score(ranks: list[int | None], k: int = RRF_K) -> float:
    """RRF contribution of one candidate; ``None`` (absent) contributes nothing."""
    return sum(1.0 / (k + r) for r in ranks if r is not None)


def rrf_fuse(rankings: list[dict[str, int]], k: int = RRF_K) -> dict[str, float]:
    """Fuse several ``key -> rank`` maps; only keys present in some ranking are scored."""
    keys: dict[str, None] = {}
    for ranking in rankings:
        keys.update(dict.fromkeys(ranking))
    return {key: rrf_score([r.get(key) for r in rankings], k) for key in keys}


def min_max_normalize(scores: dict[str, float]) -> dict[str, float]:
    """Scale to [0, 1]; a degenerate set (all equal) maps every score to 0.5."""
    if not scores:
        return {}
    low = min(scores.values())
    high = max(scores.values())
    spread = high - low
    if spread == 0:
        return {key: 0.5 for key in scores}
    return {key: (value - low) / spread for key, value in scores.items()}


def weighted_fuse(
    semantic: dict[str, float],
    lexical: dict[str, float],
    weights: SearchWeights,
) -> dict[str, float]:
    """Linear combination over the union of candidates.

    Lexical scores are min-max normalised across the lexical matches; a
    candidate without a positive lexical score contributes 0 from that side.
    """
    normalised = min_max_normalize({k: v for k, v in lexical.items() if v > 0})
    keys = dict.fromkeys([*semantic, *lexical])
    return {
        key: semantic.get(key, 0.0) * weights.semantic
        + normalised.get(key, 0.0) * weights.lexical
        for key in keys
    }
