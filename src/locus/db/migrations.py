"""Forward-only migration runner for the locus database schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS knowledge_files (
    path        TEXT PRIMARY KEY,
    content     TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS large_documents (
    id              TEXT PRIMARY KEY,
    filename        TEXT NOT NULL,
    mime_type       TEXT NOT NULL,
    file_size       INTEGER NOT NULL,
    chunk_count     INTEGER NOT NULL DEFAULT 0,
    status          TEXT NOT NULL,
    error_message   TEXT,
    uploaded_at     TEXT NOT NULL,
    indexed_at      TEXT
);

CREATE TABLE IF NOT EXISTS chats (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL DEFAULT '',
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS embeddings (
    id              TEXT NOT NULL,
    owner_kind      TEXT NOT NULL,
    owner_id        TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL,
    chunk_text      TEXT NOT NULL,
    content_hash    TEXT NOT NULL,
    heading_path    TEXT NOT NULL DEFAULT '',
    vector          BLOB NOT NULL,
    updated_at      TEXT NOT NULL,
    PRIMARY KEY (owner_kind, id)
);

CREATE INDEX IF NOT EXISTS idx_embeddings_owner ON embeddings(owner_kind, owner_id);
CREATE INDEX IF NOT EXISTS idx_embeddings_hash ON embeddings(owner_kind, content_hash);

CREATE TABLE IF NOT EXISTS links (
    id              TEXT PRIMARY KEY,
    source          TEXT NOT NULL,
    target          TEXT NOT NULL,
    relationship    TEXT NOT NULL,
    bidirectional   INTEGER NOT NULL DEFAULT 0,
    notes           TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_links_source ON links(source);
CREATE INDEX IF NOT EXISTS idx_links_target ON links(target);
CREATE INDEX IF NOT EXISTS idx_links_relationship ON links(relationship);

CREATE TABLE IF NOT EXISTS metadata (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    current = current_version(conn)
    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
