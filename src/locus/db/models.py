"""Domain models for the locus database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import numpy as np


def utc_now() -> str:
    """ISO-8601 UTC timestamp with microseconds (sortable, unique enough for tests)."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalize_path(path: str) -> str:
    """Collapse a knowledge path to ``/a/b`` form. Empty and ``/`` map to ``/``."""
    parts = [p for p in (path or "").split("/") if p]
    return "/" + "/".join(parts)


class OwnerKind(str, Enum):
    """Which collection an embedding record belongs to."""

    KNOWLEDGE = "knowledge"
    DOCUMENT = "document"
    CHAT = "chat"


class DocumentStatus(str, Enum):
    UPLOADING = "uploading"
    INDEXING = "indexing"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.ERROR)


class Relationship(str, Enum):
    """Typed edge kinds between knowledge files."""

    EXTENDS = "extends"
    REFERENCES = "references"
    CONTRADICTS = "contradicts"
    REQUIRES = "requires"
    BLOCKS = "blocks"
    RELATES_TO = "relates-to"


@dataclass(frozen=True)
class Chunk:
    """One bounded segment of a document, in document order.

    ``start_offset``/``end_offset`` are character offsets into the source
    text for the section the chunk was cut from (before overlap).
    """

    text: str
    index: int
    heading_path: str = ""
    start_offset: int = 0
    end_offset: int = 0


@dataclass
class EmbeddingRecord:
    id: str
    owner_kind: OwnerKind
    owner_id: str
    chunk_index: int
    chunk_text: str
    content_hash: str
    heading_path: str
    vector: np.ndarray = field(compare=False, repr=False)
    updated_at: str = ""


@dataclass
class KnowledgeLink:
    id: str
    source: str
    target: str
    relationship: Relationship
    bidirectional: bool = False
    notes: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "relationship": self.relationship.value,
            "bidirectional": self.bidirectional,
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class KnowledgeFile:
    path: str
    content: str
    created_at: str = ""
    updated_at: str = ""


@dataclass
class DocumentMetadata:
    """A large uploaded document and its indexing state."""

    id: str
    filename: str
    mime_type: str
    file_size: int
    chunk_count: int = 0
    status: DocumentStatus = DocumentStatus.UPLOADING
    error_message: str | None = None
    uploaded_at: str = ""
    indexed_at: str | None = None


@dataclass
class ChatMessage:
    role: str  # user | assistant | system | tool
    text: str
