"""Hybrid retriever: lexical TF-IDF + cosine similarity, fused via RRF or weights.

Pipeline for one query over one owner kind (knowledge files, large documents
or chats):

  1. load candidate records (optionally restricted to some owners)
  2. embed the query on a worker thread while lexical scoring runs here
  3. fuse:  RRF (default)   score(d) = 1/(k + rank_lex) + 1/(k + rank_sem)
            weighted        score(d) = sem * w_sem + minmax(lex) * w_lex
  4. threshold, optional rerank of the top ``retrieve_k``, truncate to top_k

If the query embedding fails the search degrades to lexical-only results.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from locus.config import RerankCfg, SearchCfg
from locus.db.models import EmbeddingRecord, OwnerKind
from locus.db.repository import Repository
from locus.errors import EmbeddingProviderError, RerankError
from locus.ingest.embedder import Embedder
from locus.rag.fusion import FusionMethod, rank, rrf_fuse, weighted_fuse
from locus.rag.lexical import (
    LexicalDocument,
    LexicalMatch,
    LexicalScorer,
    QueryType,
    SearchWeights,
    detect_query_type,
    search_weights,
)
from locus.rag.reranker import RerankDocument, Reranker, RerankerBackend
from locus.rag.semantic import score_all

log = structlog.get_logger()


@dataclass
class SearchOptions:
    """Per-query overrides; ``None`` means "use the configured default".

    Attributes:
        top_k: Maximum number of results.
        threshold: Minimum fused score (default 0.0 for RRF, 0.2 for weighted).
        fusion: Fusion method. Passing only ``semantic_weight`` selects weighted.
        semantic_weight: Explicit semantic weight; lexical weight is 1 - this.
        query_type: Skip query-type detection and use this type.
        rerank: Run the configured reranker over the top ``retrieve_k``.
        retrieve_k: Candidates handed to the reranker.
        owner_ids: Restrict the search to these owners.
    """

    top_k: int | None = None
    threshold: float | None = None
    fusion: FusionMethod | None = None
    semantic_weight: float | None = None
    query_type: QueryType | None = None
    rerank: bool = False
    retrieve_k: int | None = None
    owner_ids: list[str] | None = None


@dataclass
class SearchResult:
    """One ranked chunk, shared by knowledge, document and chat search."""

    owner_id: str
    title: str
    chunk_text: str
    heading_path: str
    score: float
    chunk_index: int
    semantic_score: float = 0.0
    lexical_score: float = 0.0
    matched_terms: list[str] = field(default_factory=list)
    query_type: QueryType = QueryType.MIXED
    fusion_method: FusionMethod = FusionMethod.RRF
    semantic_rank: int | None = None
    lexical_rank: int | None = None
    reranked: bool = False
    record_id: str = ""


class HybridRetriever:
    """Search embedded chunks of any owner kind.

    Args:
        repo: Open Repository (the candidate store).
        embedder: Query embedder.
        config: Search defaults; ``SearchCfg()`` if omitted.
        reranker: Optional reranker used when ``SearchOptions.rerank`` is set.
        rerank_cfg: Reranker defaults (``retrieve_k``).
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        config: SearchCfg | None = None,
        reranker: Reranker | None = None,
        rerank_cfg: RerankCfg | None = None,
    ) -> None:
        self.repo = repo
        self.embedder = embedder
        self.config = config or SearchCfg()
        self.reranker = reranker
        self.rerank_cfg = rerank_cfg or RerankCfg()
        self.lexical = LexicalScorer(
            heading_boost=self.config.heading_boost,
            phrase_boost=self.config.phrase_boost,
            min_score=self.config.min_lexical_score,
        )

    def search(
        self,
        query: str,
        kind: OwnerKind = OwnerKind.KNOWLEDGE,
        options: SearchOptions | None = None,
        *,
        titles: dict[str, str] | None = None,
    ) -> list[SearchResult]:
        """Return at most ``top_k`` results, best first.

        Args:
            query: Free-text query; quoted/backtick phrases match exactly.
            kind: Which collection to search.
            options: Per-query overrides.
            titles: ``owner_id -> display title`` (document filenames, chat
                titles). Titles feed the heading boost; knowledge files use
                their path.
        """
        opts = options or SearchOptions()
        titles = titles or {}
        top_k = opts.top_k if opts.top_k is not None else self.config.top_k
        if top_k < 1 or not query.strip():
            return []

        records = self.repo.iter_records(kind, opts.owner_ids)
        if not records:
            return []
        by_id = {r.id: r for r in records}

        query_type = opts.query_type or detect_query_type(query)
        if opts.fusion is not None:
            fusion = opts.fusion
        elif opts.semantic_weight is not None:
            fusion = FusionMethod.WEIGHTED
        else:
            fusion = FusionMethod(self.config.fusion)
        threshold = opts.threshold if opts.threshold is not None else fusion.default_threshold
        weights = (
            SearchWeights(opts.semantic_weight, 1.0 - opts.semantic_weight)
            if opts.semantic_weight is not None
            else search_weights(query_type)
        )

        documents = [_lexical_document(kind, r, titles) for r in records]
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="locus-embed") as pool:
            pending = pool.submit(self.embedder.embed_one, query)
            lexical_matches = self.lexical.score(query, documents)
            try:
                query_vector = pending.result()
            except EmbeddingProviderError as exc:
                log.warning("Query embedding failed, falling back to lexical-only", error=str(exc))
                query_vector = None

        matches = {m.key: m for m in lexical_matches}
        lexical_scores = {m.key: m.score for m in lexical_matches}
        lexical_ranks = rank(lexical_scores)

        if query_vector is None:
            return [
                _result(by_id[m.key], titles, m.score, query_type, FusionMethod.WEIGHTED,
                        lexical=m, lexical_rank=lexical_ranks[m.key])
                for m in lexical_matches
                if m.score >= threshold
            ][:top_k]

        similarities = score_all(query_vector, [r.vector for r in records])
        semantic_scores = {r.id: s for r, s in zip(records, similarities)}
        semantic_ranks = rank(semantic_scores)

        if fusion is FusionMethod.RRF:
            fused = rrf_fuse([lexical_ranks, semantic_ranks], k=self.config.rrf_k)
        else:
            fused = weighted_fuse(semantic_scores, lexical_scores, weights)

        ordered = sorted(
            (key for key, score in fused.items() if score >= threshold),
            key=lambda key: fused[key],
            reverse=True,
        )
        results = [
            _result(
                by_id[key],
                titles,
                fused[key],
                query_type,
                fusion,
                lexical=matches.get(key),
                semantic_score=semantic_scores.get(key, 0.0),
                semantic_rank=semantic_ranks.get(key),
                lexical_rank=lexical_ranks.get(key),
            )
            for key in ordered
        ]

        if opts.rerank and self.reranker is not None:
            retrieve_k = opts.retrieve_k or self.rerank_cfg.retrieve_k
            return self._rerank(query, results[:retrieve_k], top_k)
        return results[:top_k]

    def _rerank(self, query: str, candidates: list[SearchResult], top_k: int) -> list[SearchResult]:
        """Rerank *candidates*; on failure keep the fused order."""
        if self.reranker is None:
            return candidates[:top_k]
        docs = [RerankDocument(c.record_id, c.chunk_text, c.score) for c in candidates]
        try:
            reranked = self.reranker.rerank(query, docs, top_k)
        except RerankError as exc:
            log.warning("Rerank failed, keeping fused order", error=str(exc))
            return candidates[:top_k]

        by_id = {c.record_id: c for c in candidates}
        changed = self.reranker.backend is not RerankerBackend.NONE
        out: list[SearchResult] = []
        for item in reranked:
            result = by_id[item.id]
            result.score = item.relevance_score
            result.reranked = changed
            out.append(result)
        return out


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _lexical_document(
    kind: OwnerKind, record: EmbeddingRecord, titles: dict[str, str]
) -> LexicalDocument:
    """Searchable text and boost text for one record.

    knowledge: heading path + file path + chunk   (boost: heading + path)
    document:  heading path + chunk               (boost: heading + filename)
    chat:      chat title + chunk                 (boost: title)
    """
    title = titles.get(record.owner_id, "")
    if kind is OwnerKind.KNOWLEDGE:
        heading = f"{record.heading_path} {record.owner_id}"
        text = f"{heading} {record.chunk_text}"
    elif kind is OwnerKind.DOCUMENT:
        heading = f"{record.heading_path} {title}".strip()
        text = f"{record.heading_path} {record.chunk_text}"
    else:
        heading = title
        text = f"{title} {record.chunk_text}"
    return LexicalDocument(key=record.id, text=text, heading=heading)


def _result(
    record: EmbeddingRecord,
    titles: dict[str, str],
    score: float,
    query_type: QueryType,
    fusion: FusionMethod,
    *,
    lexical: LexicalMatch | None = None,
    semantic_score: float = 0.0,
    semantic_rank: int | None = None,
    lexical_rank: int | None = None,
) -> SearchResult:
    return SearchResult(
        owner_id=record.owner_id,
        title=titles.get(record.owner_id, record.owner_id),
        chunk_text=record.chunk_text,
        heading_path=record.heading_path,
        score=score,
        chunk_index=record.chunk_index,
        semantic_score=semantic_score,
        lexical_score=lexical.score if lexical else 0.0,
        matched_terms=list(dict.fromkeys(lexical.matched_terms)) if lexical else [],
        query_type=query_type,
        fusion_method=fusion,
        semantic_rank=semantic_rank,
        lexical_rank=lexical_rank,
        reranked=False,
        record_id=record.id,
    )
