"""Locus database layer."""

from locus.db.connection import Database
from locus.db.migrations import MIGRATIONS, run_migrations
from locus.db.repository import Repository
from locus.db.schema import initialize
from locus.db.vectors import from_blob, to_blob

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "from_blob",
    "to_blob",
]
