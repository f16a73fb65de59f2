"""Locus ingest pipeline: chunkers, embedding provider, incremental indexer."""

from locus.ingest.base import BaseChunker
from locus.ingest.chat import ChatChunker, format_transcript
from locus.ingest.embedder import Embedder, EmbeddingProvider
from locus.ingest.indexer import (
    BackgroundIndexer,
    Indexer,
    IndexReport,
    IndexStatus,
    content_hash,
    plan_index,
)
from locus.ingest.markdown import MarkdownChunker

__all__ = [
    "BaseChunker",
    "BackgroundIndexer",
    "ChatChunker",
    "Embedder",
    "EmbeddingProvider",
    "Indexer",
    "IndexReport",
    "IndexStatus",
    "MarkdownChunker",
    "content_hash",
    "format_transcript",
    "plan_index",
]
