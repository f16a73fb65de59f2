"""locus docs: large-document library.

Usage:
  locus docs add manual.md notes.txt
  locus docs ls
  locus docs rm 3f2a... --yes
  locus docs search "error budget" --doc 3f2a...
"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from locus.cli.context import DEFAULT_DB, open_workspace
from locus.cli.errors import err_document_not_found, err_unsupported_type
from locus.cli.kb import print_results
from locus.db.models import DocumentStatus
from locus.knowledge.documents import is_supported_mime_type
from locus.rag.retriever import SearchOptions

console = Console()

docs_app = typer.Typer(help="Upload and search large documents.", add_completion=False)

_DbOption = Annotated[Path, typer.Option("--db", help="Path to the locus database.")]

_STATUS_STYLE = {
    DocumentStatus.UPLOADING: "yellow",
    DocumentStatus.INDEXING: "yellow",
    DocumentStatus.READY: "green",
    DocumentStatus.ERROR: "red",
}


def _mime_type(path: Path) -> str:
    if path.suffix.lower() in {".md", ".markdown"}:
        return "text/markdown"
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "text/plain"


@docs_app.command("add")
def add_cmd(
    files: Annotated[list[Path], typer.Argument(help="Text files to upload.", exists=True, dir_okay=False)],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Upload and index one or more text documents."""
    failures = 0
    with open_workspace(db) as ws:
        for path in files:
            mime_type = _mime_type(path)
            if not is_supported_mime_type(mime_type):
                console.print(err_unsupported_type(str(path), mime_type))
                failures += 1
                continue
            text = path.read_text(encoding="utf-8", errors="replace")
            with console.status(f"Indexing {path.name}..."):
                doc = ws.documents.upload_text(path.name, text, mime_type)
            if doc.status is DocumentStatus.ERROR:
                console.print(f"[red]✗[/] {path.name}: {doc.error_message}")
                failures += 1
            else:
                console.print(f"[green]✓[/] {path.name}  [dim]{doc.id}  {doc.chunk_count} chunks[/]")
    if failures:
        raise typer.Exit(1)


@docs_app.command("ls")
def ls_cmd(db: _DbOption = DEFAULT_DB) -> None:
    """List uploaded documents, newest first."""
    with open_workspace(db) as ws:
        docs = ws.documents.list_documents()
        stats = ws.documents.stats()
    if not docs:
        console.print("[dim]No documents uploaded yet.[/]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Filename")
    table.add_column("Size", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Status")
    for d in docs:
        style = _STATUS_STYLE[d.status]
        table.add_row(d.id, d.filename, f"{d.file_size:,}", str(d.chunk_count), f"[{style}]{d.status.value}[/]")
    console.print(table)
    console.print(
        f"[dim]{stats.documents} documents ({stats.ready} ready), "
        f"{stats.total_size:,} bytes, {stats.total_chunks} chunks[/]"
    )


@docs_app.command("rm")
def rm_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id (see locus docs ls).")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Delete a document and its chunks."""
    with open_workspace(db) as ws:
        doc = ws.documents.get_document(doc_id)
        if doc is None:
            console.print(err_document_not_found(doc_id))
            raise typer.Exit(1)
        console.print(f"\nDelete document: [bold]{doc.filename}[/] ({doc.chunk_count} chunks)")
        if not yes and not typer.confirm("Confirm deletion?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
        ws.documents.delete_document(doc_id)
    console.print(f"[green]✓[/] Removed: {doc.filename}")


@docs_app.command("search")
def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query.")],
    doc: Annotated[
        list[str] | None,
        typer.Option("--doc", help="Limit to these document ids (repeatable)."),
    ] = None,
    top_k: Annotated[int | None, typer.Option("--top-k", "-k", help="Number of results.")] = None,
    rerank: Annotated[bool, typer.Option("--rerank", help="Rerank candidates with the configured backend.")] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Hybrid search over ready documents."""
    with open_workspace(db) as ws:
        results = ws.documents.search(query, SearchOptions(top_k=top_k, rerank=rerank), doc or None)
    print_results(results)
