"""Semantic scorer: cosine similarity of a query vector against stored vectors."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 if either is all zeros.

    Raises:
        ValueError: If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape} vs {vb.shape}")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def score_all(query: np.ndarray, vectors: list[np.ndarray]) -> list[float]:
    """Cosine similarity of *query* against each of *vectors*, in order.

    Vectors whose dimension differs from the query (e.g. written by a
    different embedding model) score 0.0.
    """
    if not vectors:
        return []
    q = np.asarray(query, dtype=np.float64)
    q_norm = float(np.linalg.norm(q))
    scores: list[float] = []
    for v in vectors:
        v64 = np.asarray(v, dtype=np.float64)
        if v64.shape != q.shape or q_norm == 0.0:
            scores.append(0.0)
            continue
        denom = q_norm * float(np.linalg.norm(v64))
        scores.append(float(np.dot(q, v64) / denom) if denom else 0.0)
    return scores
