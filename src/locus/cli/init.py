"""locus init: create the database and the global config.

Creates:
  .locus.db               local memory with schema
  ~/.locus/config.yaml    global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from locus.cli.context import DEFAULT_DB, load_config_or_exit, open_db
from locus.config import ensure_global_config
from locus.db.repository import EMBEDDING_MODEL_KEY, Repository
from locus.db.schema import CURRENT_VERSION

console = Console()


def init_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the locus database."),
    ] = DEFAULT_DB,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override ~/.locus/config.yaml (for testing)."),
    ] = None,
) -> None:
    """Create a new locus database (existing data is preserved)."""
    existed = db.exists()
    db.parent.mkdir(parents=True, exist_ok=True)

    cfg_path = ensure_global_config(global_config)
    cfg = load_config_or_exit(global_config)

    conn = open_db(db)
    try:
        repo = Repository(conn)
        if repo.get_meta(EMBEDDING_MODEL_KEY) is None:
            repo.set_meta(EMBEDDING_MODEL_KEY, cfg.embedding.model)
    finally:
        conn.close()

    if existed:
        console.print(f"[yellow]⚠[/]  {db} already exists, schema checked (v{CURRENT_VERSION}).")
    else:
        console.print(f"[green]✓[/] Created {db} (schema v{CURRENT_VERSION})")
    console.print(f"  Global config:   {cfg_path}")
    console.print(f"  Embedding model: {cfg.embedding.model}")
