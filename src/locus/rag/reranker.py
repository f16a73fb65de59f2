"""Second-pass reranking of fused candidates.

Backends:
  cohere  managed cross-encoder via litellm.rerank()
  llm     LLM-as-scorer: one completion per document, reply parsed as a
          relevance scalar in [0, 1]
  none    pass-through, fused order preserved

``Reranker.rerank`` raises RerankError when the backend call fails; the
retriever catches it and keeps the fused order.
"""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

import structlog

from locus.errors import RerankError
from locus.rag import llm_client

log = structlog.get_logger()

_MAX_DOC_CHARS = 2000

_SCORER_SYSTEM_PROMPT = """\
You are a relevance scoring system. Given a query and a document, output ONLY a \
single number from 0 to 1 representing how relevant the document is to answering \
the query.
0 = completely irrelevant
0.5 = somewhat relevant
1 = highly relevant, directly answers the query

Output only the number, nothing else."""


class RerankerBackend(str, Enum):
    COHERE = "cohere"
    LLM = "llm"
    NONE = "none"


def recommended_backend() -> RerankerBackend:
    """Pick the best backend the environment has credentials for."""
    if llm_client.has_api_key("cohere"):
        return RerankerBackend.COHERE
    if llm_client.has_api_key("openai"):
        return RerankerBackend.LLM
    return RerankerBackend.NONE


def resolve_backend(name: str) -> RerankerBackend:
    """Map a config value (``auto`` or a backend name) to a backend."""
    if name == "auto":
        return recommended_backend()
    try:
        return RerankerBackend(name)
    except ValueError:
        raise ValueError(f"Unknown reranker backend: '{name}'") from None


@dataclass
class RerankDocument:
    id: str
    text: str
    original_score: float = 0.0


@dataclass
class RerankResult:
    id: str
    text: str
    relevance_score: float
    original_score: float
    rank: int


class Reranker:
    """Pluggable reranker.

    Args:
        backend: Which backend to call.
        cohere_model: LiteLLM rerank model for the cohere backend.
        llm_model: LiteLLM chat model for the llm backend.
        max_workers: Concurrent scoring requests for the llm backend.
    """

    def __init__(
        self,
        backend: RerankerBackend = RerankerBackend.NONE,
        cohere_model: str = "cohere/rerank-v3.5",
        llm_model: str = "openai/gpt-4o-mini",
        max_workers: int = 4,
    ) -> None:
        self.backend = backend
        self.cohere_model = cohere_model
        self.llm_model = llm_model
        self.max_workers = max_workers

    def rerank(self, query: str, documents: list[RerankDocument], top_k: int) -> list[RerankResult]:
        """Return at most *top_k* results, most relevant first.

        Raises:
            RerankError: If the backend is unavailable or its call fails.
        """
        if not documents:
            return []
        if self.backend is RerankerBackend.NONE:
            return _in_order(documents, top_k)
        if self.backend is RerankerBackend.COHERE:
            return self._rerank_cross_encoder(query, documents, top_k)
        return self._rerank_llm(query, documents, top_k)

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def _rerank_cross_encoder(
        self, query: str, documents: list[RerankDocument], top_k: int
    ) -> list[RerankResult]:
        try:
            llm_client.validate_api_key(self.cohere_model)
            pairs = llm_client.rerank(
                self.cohere_model, query, [d.text for d in documents], top_n=top_k
            )
        except Exception as exc:
            raise RerankError(f"Rerank request to '{self.cohere_model}' failed: {exc}") from exc

        results: list[RerankResult] = []
        for position, (index, score) in enumerate(pairs[:top_k]):
            if not 0 <= index < len(documents):
                raise RerankError(f"Reranker returned out-of-range index {index}")
            doc = documents[index]
            results.append(
                RerankResult(
                    id=doc.id,
                    text=doc.text,
                    relevance_score=score,
                    original_score=doc.original_score,
                    rank=position + 1,
                )
            )
        return results

    def _rerank_llm(
        self, query: str, documents: list[RerankDocument], top_k: int
    ) -> list[RerankResult]:
        try:
            llm_client.validate_api_key(self.llm_model)
        except EnvironmentError as exc:
            raise RerankError(str(exc)) from exc

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            scores = list(pool.map(lambda d: self._score_or_keep(query, d), documents))

        order = sorted(range(len(documents)), key=lambda i: scores[i], reverse=True)[:top_k]
        return [
            RerankResult(
                id=documents[i].id,
                text=documents[i].text,
                relevance_score=scores[i],
                original_score=documents[i].original_score,
                rank=position + 1,
            )
            for position, i in enumerate(order)
        ]

    def _score_or_keep(self, query: str, doc: RerankDocument) -> float:
        """LLM relevance for one document; its original score if the call fails."""
        try:
            return self._score(query, doc.text)
        except Exception as exc:
            log.warning("Rerank scoring failed, keeping original score", doc_id=doc.id, error=str(exc))
            return doc.original_score

    def _score(self, query: str, text: str) -> float:
        if len(text) > _MAX_DOC_CHARS:
            text = text[:_MAX_DOC_CHARS] + "..."
        reply = llm_client.complete(
            self.llm_model,
            [
                {"role": "system", "content": _SCORER_SYSTEM_PROMPT},
                {"role": "user", "content": f"Query: {query}\n\nDocument: {text}"},
            ],
            max_tokens=10,
            temperature=0.0,
        )
        return parse_relevance(reply)


def parse_relevance(reply: str) -> float:
    """Parse a scorer reply into [0, 1]; anything unparseable is 0."""
    try:
        value = float(reply.strip().split()[0])
    except (ValueError, IndexError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _in_order(documents: list[RerankDocument], top_k: int) -> list[RerankResult]:
    return [
        RerankResult(
            id=d.id,
            text=d.text,
            relevance_score=d.original_score,
            original_score=d.original_score,
            rank=i + 1,
        )
        for i, d in enumerate(documents[:top_k])
    ]
