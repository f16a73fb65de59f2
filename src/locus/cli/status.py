"""locus status: database, index and graph overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

from locus.cli.context import DEFAULT_DB, load_config_or_exit, open_db
from locus.config import LocusConfig
from locus.db.models import OwnerKind
from locus.db.repository import EMBEDDING_MODEL_KEY, Repository
from locus.graph.links import LinkStore
from locus.rag import llm_client
from locus.rag.reranker import resolve_backend

console = Console()


def status_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the locus database."),
    ] = DEFAULT_DB,
) -> None:
    """Show database, index, link graph and provider status."""
    cfg = load_config_or_exit()
    _show_config_panel(cfg)

    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  locus init",
                title="[bold]Memory[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        _show_memory_panel(db, Repository(conn))
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(cfg: LocusConfig) -> None:
    provider = llm_client.provider_of(cfg.embedding.model)
    key = "[green]✓[/]" if llm_client.has_api_key(provider) else "[yellow]✗ missing key[/]"
    lines = [
        f"Embedding:  {cfg.embedding.model} {key}",
        f"Fusion:     {cfg.search.fusion} (top_k {cfg.search.top_k}, rrf_k {cfg.search.rrf_k})",
        f"Reranker:   {resolve_backend(cfg.rerank.backend).value} (configured: {cfg.rerank.backend})",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Config[/]", expand=False))


def _show_memory_panel(db: Path, repo: Repository) -> None:
    size_mb = db.stat().st_size / (1024 * 1024)
    files = repo.list_files("/")
    docs = repo.list_documents()
    stats = LinkStore(repo).link_stats()
    dims = repo.embedding_dimensions()

    lines = [
        f"Database:  {db} ({size_mb:.1f} MB)",
        f"Model:     {repo.get_meta(EMBEDDING_MODEL_KEY) or '[dim](none yet)[/]'}"
        + (f"  [dim]{dims} dims[/]" if dims else ""),
        f"Files: [bold]{len(files)}[/]  |  "
        f"Documents: [bold]{len(docs)}[/]  |  "
        f"Chats: [bold]{len(repo.chat_titles())}[/]",
        "Chunks:    "
        + "  ".join(f"{kind.value} [bold]{repo.count_records(kind):,}[/]" for kind in OwnerKind),
        f"Links:     [bold]{stats.total}[/]  "
        + " ".join(f"[dim]{rel.value}[/] {n}" for rel, n in stats.by_relationship.items() if n),
    ]
    console.print(Panel("\n".join(lines), title="[bold]Memory[/]", expand=False))
