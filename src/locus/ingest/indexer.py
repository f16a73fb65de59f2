"""Incremental, content-addressed indexing of chunk embeddings.

One pass per owner (file, document or chat):

  1. chunk the text
  2. diff the chunks against stored records by content hash:
       unchanged  hash already stored → reuse vector, refresh id/index/heading
       new        hash not stored     → embed (batched) and write
       stale      stored id no longer among ``owner#0..n-1`` → delete
  3. embed the new partition; on provider failure log and stop, nothing written
  4. write new + refreshed records, then sweep stale ids

A vector whose hash is unchanged is never recomputed and keeps its
``updated_at``, so re-indexing cost follows the amount of changed text.
"""

from __future__ import annotations

import hashlib
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

import structlog

from locus.db.models import Chunk, EmbeddingRecord, OwnerKind, utc_now
from locus.db.repository import Repository
from locus.errors import EmbeddingProviderError, EmptyDocumentError
from locus.ingest.base import BaseChunker
from locus.ingest.embedder import Embedder
from locus.ingest.markdown import MarkdownChunker

log = structlog.get_logger()


def content_hash(text: str) -> str:
    """SHA-256 hex digest of *text* (the embedding cache key)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def record_id(owner_id: str, chunk_index: int) -> str:
    return f"{owner_id}#{chunk_index}"


class IndexStatus(str, Enum):
    INDEXED = "indexed"
    UNCHANGED = "unchanged"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class IndexReport:
    status: IndexStatus
    owner_kind: OwnerKind
    owner_id: str
    chunk_count: int = 0
    reused: int = 0
    embedded: int = 0
    deleted: int = 0
    error: str | None = None


@dataclass
class IndexPlan:
    """Three-way partition of one owner's chunks against its stored records."""

    unchanged: list[tuple[Chunk, EmbeddingRecord]] = field(default_factory=list)
    new: list[Chunk] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.new and not self.stale and all(
            rec.id == record_id(rec.owner_id, chunk.index) and rec.heading_path == chunk.heading_path
            for chunk, rec in self.unchanged
        )


def plan_index(
    owner_id: str,
    chunks: list[Chunk],
    existing: list[EmbeddingRecord],
    *,
    strict: bool = False,
) -> IndexPlan:
    """Compute the unchanged/new/stale partition for one owner.

    Args:
        owner_id: Owner whose records are being replaced.
        chunks: Fresh chunking of the owner's text.
        existing: Records currently stored for the owner.
        strict: Raise EmptyDocumentError when *chunks* is empty instead of
            planning a full delete.
    """
    if strict and not chunks:
        raise EmptyDocumentError(f"No chunks produced for '{owner_id}'")

    by_hash: dict[str, EmbeddingRecord] = {}
    for rec in existing:
        by_hash.setdefault(rec.content_hash, rec)

    plan = IndexPlan()
    for chunk in chunks:
        rec = by_hash.get(content_hash(chunk.text))
        if rec is not None:
            plan.unchanged.append((chunk, rec))
        else:
            plan.new.append(chunk)

    current_ids = {record_id(owner_id, c.index) for c in chunks}
    plan.stale = [rec.id for rec in existing if rec.id not in current_ids]
    return plan


class Indexer:
    """Embed and persist chunks for any owner kind.

    Args:
        repo: Open Repository.
        embedder: Embedding provider (see locus.ingest.embedder).
        chunker: Chunker used by ``index()``; defaults to MarkdownChunker().
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        chunker: BaseChunker | None = None,
    ) -> None:
        self.repo = repo
        self.embedder = embedder
        self.chunker = chunker or MarkdownChunker()

    def index(self, kind: OwnerKind, owner_id: str, text: str) -> IndexReport:
        """Chunk *text* and bring the owner's records up to date."""
        return self.index_chunks(kind, owner_id, self.chunker.chunk(text))

    def index_chunks(self, kind: OwnerKind, owner_id: str, chunks: list[Chunk]) -> IndexReport:
        """Bring the owner's records in line with *chunks*. Never raises on provider errors."""
        existing = self.repo.get_records(kind, owner_id)

        if not chunks:
            deleted = self.repo.delete_owner_records(kind, owner_id)
            log.debug(
                "Empty document, removed indexed chunks",
                owner_kind=kind.value,
                owner_id=owner_id,
                deleted=deleted,
            )
            return IndexReport(IndexStatus.EMPTY, kind, owner_id, deleted=deleted)

        plan = plan_index(owner_id, chunks, existing)
        if plan.is_noop:
            return IndexReport(
                IndexStatus.UNCHANGED, kind, owner_id,
                chunk_count=len(chunks), reused=len(plan.unchanged),
            )

        try:
            vectors = self.embedder.embed_many([c.text for c in plan.new]) if plan.new else []
        except EmbeddingProviderError as exc:
            log.warning(
                "Embedding failed, index pass aborted",
                owner_kind=kind.value,
                owner_id=owner_id,
                new_chunks=len(plan.new),
                error=str(exc),
            )
            return IndexReport(
                IndexStatus.FAILED, kind, owner_id, chunk_count=len(chunks), error=str(exc)
            )

        now = utc_now()
        records = [
            EmbeddingRecord(
                id=record_id(owner_id, chunk.index),
                owner_kind=kind,
                owner_id=owner_id,
                chunk_index=chunk.index,
                chunk_text=chunk.text,
                content_hash=content_hash(chunk.text),
                heading_path=chunk.heading_path,
                vector=vector,
                updated_at=now,
            )
            for chunk, vector in zip(plan.new, vectors)
        ]
        records.extend(_refresh(kind, owner_id, chunk, rec) for chunk, rec in plan.unchanged)

        self.repo.upsert_records(records)
        deleted = self.repo.delete_records(kind, plan.stale)

        log.info(
            "Indexed chunks",
            owner_kind=kind.value,
            owner_id=owner_id,
            reused=len(plan.unchanged),
            embedded=len(plan.new),
            deleted=deleted,
        )
        return IndexReport(
            IndexStatus.INDEXED,
            kind,
            owner_id,
            chunk_count=len(chunks),
            reused=len(plan.unchanged),
            embedded=len(plan.new),
            deleted=deleted,
        )

    def delete(self, kind: OwnerKind, owner_id: str) -> int:
        """Remove every record of one owner; returns the number deleted."""
        return self.repo.delete_owner_records(kind, owner_id)


def _refresh(kind: OwnerKind, owner_id: str, chunk: Chunk, rec: EmbeddingRecord) -> EmbeddingRecord:
    """Reused record moved to the chunk's position; vector and updated_at are kept."""
    return EmbeddingRecord(
        id=record_id(owner_id, chunk.index),
        owner_kind=kind,
        owner_id=owner_id,
        chunk_index=chunk.index,
        chunk_text=chunk.text,
        content_hash=rec.content_hash,
        heading_path=chunk.heading_path,
        vector=rec.vector,
        updated_at=rec.updated_at,
    )


class BackgroundIndexer:
    """Single-writer background indexing.

    Jobs run one at a time on a dedicated worker thread; ``submit()`` returns
    immediately. Failures are logged and turned into FAILED reports, never
    raised into the caller that triggered the write.
    """

    def __init__(self, indexer: Indexer) -> None:
        self.indexer = indexer
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="locus-index")
        self._pending: list[Future] = []
        self._lock = threading.Lock()

    def submit(
        self,
        kind: OwnerKind,
        owner_id: str,
        text: str | None = None,
        *,
        chunks: list[Chunk] | None = None,
    ) -> Future:
        """Queue an index pass for *owner_id* from *text* or pre-built *chunks*."""
        future = self._executor.submit(self._run, kind, owner_id, text, chunks)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def submit_delete(self, kind: OwnerKind, owner_id: str) -> Future:
        return self.submit(kind, owner_id, chunks=[])

    def wait(self) -> list[IndexReport]:
        """Block until all queued jobs finish; return their reports in submit order."""
        with self._lock:
            pending, self._pending = self._pending, []
        return [f.result() for f in pending]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> BackgroundIndexer:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _run(
        self,
        kind: OwnerKind,
        owner_id: str,
        text: str | None,
        chunks: list[Chunk] | None,
    ) -> IndexReport:
        try:
            if chunks is not None:
                return self.indexer.index_chunks(kind, owner_id, chunks)
            return self.indexer.index(kind, owner_id, text or "")
        except Exception as exc:
            log.exception("Background index pass failed", owner_kind=kind.value, owner_id=owner_id)
            return IndexReport(IndexStatus.FAILED, kind, owner_id, error=str(exc))
