"""Schema initialisation entry point."""

from __future__ import annotations

import sqlite3

from locus.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    run_migrations(conn)
