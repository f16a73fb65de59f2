"""Error taxonomy for the retrieval core.

None of these are meant to reach an end user as a raw traceback:

  EmbeddingProviderError  caught by the indexer (pass aborted, logged) and by
                          the retriever (lexical-only fallback).
  RerankError             caught by the retriever (fused order returned).
  LinkValidationError     converted to LinkResult(success=False, error=...).
  EmptyDocumentError      "nothing to index"; only raised on strict planning.
"""

from __future__ import annotations


class LocusError(Exception):
    """Base class for all locus errors."""


class EmbeddingProviderError(LocusError, RuntimeError):
    """The embedding provider failed (network, auth, malformed response)."""


class RerankError(LocusError, RuntimeError):
    """The reranker backend failed or returned an unusable response."""


class LinkValidationError(LocusError, ValueError):
    """A link could not be created: missing endpoint or self-link."""


class EmptyDocumentError(LocusError, ValueError):
    """Chunking produced zero chunks for a document."""
