"""Repository pattern for all locus database operations.

Single interface for: knowledge files, large documents, chats, embedding
records, knowledge links, and the metadata key/value table. Every component
receives a Repository instead of opening its own connection.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Iterable

from locus.db.models import (
    DocumentMetadata,
    DocumentStatus,
    EmbeddingRecord,
    KnowledgeFile,
    KnowledgeLink,
    OwnerKind,
    Relationship,
    utc_now,
)
from locus.db.vectors import from_blob, to_blob

_RECORD_COLUMNS = (
    "id, owner_kind, owner_id, chunk_index, chunk_text, content_hash, "
    "heading_path, vector, updated_at"
)
_LINK_COLUMNS = (
    "id, source, target, relationship, bidirectional, notes, created_at, updated_at"
)
_DOC_COLUMNS = (
    "id, filename, mime_type, file_size, chunk_count, status, error_message, "
    "uploaded_at, indexed_at"
)

# Metadata key pinning the database to the embedding model its vectors came from.
EMBEDDING_MODEL_KEY = "embedding_model"


class Repository:
    """Data access layer for all locus database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use. Statements are serialised with a re-entrant
    lock so the background indexer can share the connection.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see locus.db.schema.initialize).
        """
        self._conn = conn
        self._lock = threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Knowledge files
    # ------------------------------------------------------------------

    def upsert_file(self, path: str, content: str) -> KnowledgeFile:
        """Insert or replace a file, preserving its original created_at."""
        now = utc_now()
        with self._lock:
            existing = self.get_file(path)
            created_at = existing.created_at if existing else now
            self._conn.execute(
                """
                INSERT OR REPLACE INTO knowledge_files (path, content, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (path, content, created_at, now),
            )
            self._conn.commit()
        return KnowledgeFile(path=path, content=content, created_at=created_at, updated_at=now)

    def restore_file(self, file: KnowledgeFile) -> None:
        """Write *file* with its own timestamps (backup import)."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO knowledge_files (path, content, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (file.path, file.content, file.created_at, file.updated_at),
            )
            self._conn.commit()

    def get_file(self, path: str) -> KnowledgeFile | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT path, content, created_at, updated_at FROM knowledge_files WHERE path = ?",
                (path,),
            ).fetchone()
        return _row_to_file(row) if row else None

    def file_exists(self, path: str) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM knowledge_files WHERE path = ?", (path,)
            ).fetchone()
        return row is not None

    def list_files(self, prefix: str = "/") -> list[KnowledgeFile]:
        """Return files whose path lies under *prefix*, ordered by path."""
        like = "/%" if prefix == "/" else f"{prefix}/%"
        with self._lock:
            rows = self._conn.execute(
                "SELECT path, content, created_at, updated_at FROM knowledge_files "
                "WHERE path LIKE ? ORDER BY path",
                (like,),
            ).fetchall()
        return [_row_to_file(r) for r in rows]

    def delete_file(self, path: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM knowledge_files WHERE path = ?", (path,))
            self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Large documents
    # ------------------------------------------------------------------

    def save_document(self, doc: DocumentMetadata) -> None:
        """Insert or replace a large-document metadata row."""
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO large_documents ({_DOC_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    doc.id,
                    doc.filename,
                    doc.mime_type,
                    doc.file_size,
                    doc.chunk_count,
                    doc.status.value,
                    doc.error_message,
                    doc.uploaded_at,
                    doc.indexed_at,
                ),
            )
            self._conn.commit()

    def get_document(self, doc_id: str) -> DocumentMetadata | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_DOC_COLUMNS} FROM large_documents WHERE id = ?", (doc_id,)
            ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[DocumentMetadata]:
        """All documents, newest upload first."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_DOC_COLUMNS} FROM large_documents ORDER BY uploaded_at DESC"
            ).fetchall()
        return [_row_to_document(r) for r in rows]

    def delete_document(self, doc_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM large_documents WHERE id = ?", (doc_id,))
            self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def upsert_chat(self, chat_id: str, title: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO chats (id, title, updated_at) VALUES (?, ?, ?)",
                (chat_id, title, utc_now()),
            )
            self._conn.commit()

    def chat_titles(self) -> dict[str, str]:
        with self._lock:
            rows = self._conn.execute("SELECT id, title FROM chats").fetchall()
        return {r["id"]: r["title"] for r in rows}

    def delete_chat(self, chat_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
            self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Embedding records
    # ------------------------------------------------------------------

    def get_records(self, kind: OwnerKind, owner_id: str) -> list[EmbeddingRecord]:
        """All records for one owner, ordered by chunk index."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM embeddings "
                "WHERE owner_kind = ? AND owner_id = ? ORDER BY chunk_index",
                (kind.value, owner_id),
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def iter_records(
        self, kind: OwnerKind, owner_ids: Iterable[str] | None = None
    ) -> list[EmbeddingRecord]:
        """All records of *kind*, optionally limited to *owner_ids*."""
        sql = f"SELECT {_RECORD_COLUMNS} FROM embeddings WHERE owner_kind = ?"
        params: list = [kind.value]
        if owner_ids is not None:
            ids = list(owner_ids)
            if not ids:
                return []
            sql += f" AND owner_id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        sql += " ORDER BY owner_id, chunk_index"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_record(r) for r in rows]

    def upsert_records(self, records: list[EmbeddingRecord]) -> None:
        """Write *records* in one transaction (idempotent by (owner_kind, id))."""
        if not records:
            return
        with self._lock:
            self._conn.executemany(
                f"INSERT OR REPLACE INTO embeddings ({_RECORD_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        r.id,
                        r.owner_kind.value,
                        r.owner_id,
                        r.chunk_index,
                        r.chunk_text,
                        r.content_hash,
                        r.heading_path,
                        to_blob(r.vector),
                        r.updated_at,
                    )
                    for r in records
                ],
            )
            self._conn.commit()

    def delete_records(self, kind: OwnerKind, ids: Iterable[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        with self._lock:
            cur = self._conn.executemany(
                "DELETE FROM embeddings WHERE owner_kind = ? AND id = ?",
                [(kind.value, i) for i in ids],
            )
            self._conn.commit()
        return cur.rowcount

    def delete_owner_records(self, kind: OwnerKind, owner_id: str) -> int:
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM embeddings WHERE owner_kind = ? AND owner_id = ?",
                (kind.value, owner_id),
            )
            self._conn.commit()
        return cur.rowcount

    def delete_all_records(self, kind: OwnerKind) -> int:
        """Drop every record of *kind*; returns the number deleted."""
        with self._lock:
            cur = self._conn.execute("DELETE FROM embeddings WHERE owner_kind = ?", (kind.value,))
            self._conn.commit()
        return cur.rowcount

    def count_records(self, kind: OwnerKind | None = None) -> int:
        with self._lock:
            if kind is None:
                row = self._conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM embeddings WHERE owner_kind = ?", (kind.value,)
                ).fetchone()
        return row[0]

    def embedding_dimensions(self) -> int | None:
        """Dimensionality of stored vectors (via sqlite-vec), or None if empty."""
        with self._lock:
            row = self._conn.execute(
                "SELECT vec_length(vector) FROM embeddings LIMIT 1"
            ).fetchone()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Knowledge links
    # ------------------------------------------------------------------

    def get_link(self, link_id: str) -> KnowledgeLink | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_LINK_COLUMNS} FROM links WHERE id = ?", (link_id,)
            ).fetchone()
        return _row_to_link(row) if row else None

    def upsert_link(self, link: KnowledgeLink) -> None:
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO links ({_LINK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    link.id,
                    link.source,
                    link.target,
                    link.relationship.value,
                    int(link.bidirectional),
                    link.notes,
                    link.created_at,
                    link.updated_at,
                ),
            )
            self._conn.commit()

    def delete_link(self, link_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM links WHERE id = ?", (link_id,))
            self._conn.commit()
        return cur.rowcount > 0

    def links_from(self, source: str) -> list[KnowledgeLink]:
        return self._select_links("WHERE source = ?", (source,))

    def links_to(self, target: str) -> list[KnowledgeLink]:
        return self._select_links("WHERE target = ?", (target,))

    def all_links(self) -> list[KnowledgeLink]:
        return self._select_links("", ())

    def links_by_relationship(self, relationship: Relationship) -> list[KnowledgeLink]:
        return self._select_links("WHERE relationship = ?", (relationship.value,))

    def delete_links_touching(self, path: str) -> int:
        """Delete every link where *path* is source or target; return the count."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM links WHERE source = ? OR target = ?", (path, path)
            )
            self._conn.commit()
        return cur.rowcount

    def link_counts(self) -> dict[str, int]:
        """Link count per relationship value."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT relationship, COUNT(*) AS n FROM links GROUP BY relationship"
            ).fetchall()
        return {r["relationship"]: r["n"] for r in rows}

    def _select_links(self, where: str, params: tuple) -> list[KnowledgeLink]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_LINK_COLUMNS} FROM links {where} ORDER BY created_at, id", params
            ).fetchall()
        return [_row_to_link(r) for r in rows]

    # ------------------------------------------------------------------
    # Metadata (derived caches, e.g. graph layout)
    # ------------------------------------------------------------------

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, utc_now()),
            )
            self._conn.commit()

    def get_meta(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM metadata WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def delete_meta(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM metadata WHERE key = ?", (key,))
            self._conn.commit()


# ------------------------------------------------------------------
# Row mappers
# ------------------------------------------------------------------


def _row_to_file(row: sqlite3.Row) -> KnowledgeFile:
    return KnowledgeFile(
        path=row["path"],
        content=row["content"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_document(row: sqlite3.Row) -> DocumentMetadata:
    return DocumentMetadata(
        id=row["id"],
        filename=row["filename"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        chunk_count=row["chunk_count"],
        status=DocumentStatus(row["status"]),
        error_message=row["error_message"],
        uploaded_at=row["uploaded_at"],
        indexed_at=row["indexed_at"],
    )


def _row_to_record(row: sqlite3.Row) -> EmbeddingRecord:
    return EmbeddingRecord(
        id=row["id"],
        owner_kind=OwnerKind(row["owner_kind"]),
        owner_id=row["owner_id"],
        chunk_index=row["chunk_index"],
        chunk_text=row["chunk_text"],
        content_hash=row["content_hash"],
        heading_path=row["heading_path"],
        vector=from_blob(row["vector"]),
        updated_at=row["updated_at"],
    )


def _row_to_link(row: sqlite3.Row) -> KnowledgeLink:
    return KnowledgeLink(
        id=row["id"],
        source=row["source"],
        target=row["target"],
        relationship=Relationship(row["relationship"]),
        bidirectional=bool(row["bidirectional"]),
        notes=row["notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
