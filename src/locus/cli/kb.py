"""locus kb: knowledge-base file operations and hybrid search.

Usage:
  locus kb write /notes/auth.md --file auth.md
  echo "text" | locus kb write /notes/todo.md
  locus kb read /notes/auth.md
  locus kb ls /notes
  locus kb rm /notes/auth.md --yes
  locus kb search "token refresh" --top-k 10 --rerank
  locus kb reindex --clear
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from locus.cli.context import DEFAULT_DB, check_embedding_model, open_workspace
from locus.cli.errors import err_file_not_found
from locus.ingest.indexer import IndexStatus
from locus.rag.fusion import FusionMethod
from locus.rag.retriever import SearchOptions, SearchResult

console = Console()

kb_app = typer.Typer(help="Read, write and search knowledge files.", add_completion=False)

_DbOption = Annotated[Path, typer.Option("--db", help="Path to the locus database.")]


@kb_app.command("write")
def write_cmd(
    path: Annotated[str, typer.Argument(help="Knowledge path, e.g. /notes/auth.md")],
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Read content from this file instead of stdin."),
    ] = None,
    append: Annotated[bool, typer.Option("--append", help="Append instead of overwrite.")] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Create or overwrite a knowledge file and index it."""
    content = file.read_text(encoding="utf-8") if file is not None else sys.stdin.read()
    with open_workspace(db) as ws:
        try:
            written = ws.kb.append_file(path, content) if append else ws.kb.write_file(path, content)
        except ValueError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)
        reports = ws.background.wait()

    failed = [r for r in reports if r.status is IndexStatus.FAILED]
    console.print(f"[green]✓[/] Wrote {written.path} ({len(written.content)} chars)")
    for report in reports:
        if report.status is IndexStatus.FAILED:
            continue
        console.print(
            f"  [dim]{report.status.value}: {report.chunk_count} chunks, "
            f"{report.embedded} embedded, {report.reused} reused[/]"
        )
    if failed:
        console.print(
            f"[yellow]⚠[/]  Embedding failed, file saved but not searchable semantically: {failed[0].error}"
        )


@kb_app.command("read")
def read_cmd(
    path: Annotated[str, typer.Argument(help="Knowledge path.")],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Print a knowledge file."""
    with open_workspace(db) as ws:
        try:
            content = ws.kb.read_file(path)
        except FileNotFoundError:
            console.print(err_file_not_found(path))
            raise typer.Exit(1)
    typer.echo(content)


@kb_app.command("ls")
def ls_cmd(
    path: Annotated[str, typer.Argument(help="Folder to list.")] = "/",
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="List every file below the folder.")] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """List a folder's children, or every file below it with --recursive."""
    with open_workspace(db) as ws:
        if recursive:
            files = ws.kb.list_files(path)
            if not files:
                console.print("[dim]No files.[/]")
                return
            table = Table(show_header=True, header_style="bold")
            table.add_column("Path")
            table.add_column("Chars", justify="right")
            table.add_column("Updated", style="dim")
            for f in files:
                table.add_row(f.path, str(len(f.content)), f.updated_at[:19])
            console.print(table)
            return
        children = ws.kb.list_folder(path)
    if not children:
        console.print("[dim]Empty.[/]")
    for name in children:
        typer.echo(name)


@kb_app.command("rm")
def rm_cmd(
    path: Annotated[str, typer.Argument(help="File or folder to delete.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Delete a file (or every file in a folder) with its embeddings and links."""
    with open_workspace(db) as ws:
        is_file = ws.kb.exists(path)
        targets = [path] if is_file else [f.path for f in ws.kb.list_files(path)]
        if not targets:
            console.print(err_file_not_found(path))
            raise typer.Exit(0)

        console.print(f"\nDelete: [bold]{path}[/] ({len(targets)} file{'s' if len(targets) != 1 else ''})")
        if not yes and not typer.confirm("Confirm deletion?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        removed = int(ws.kb.delete_file(path)) if is_file else ws.kb.delete_folder(path)
        ws.background.wait()
    console.print(f"[green]✓[/] Deleted {removed} file{'s' if removed != 1 else ''}")


@kb_app.command("search")
def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query; quote phrases for exact matches.")],
    top_k: Annotated[int | None, typer.Option("--top-k", "-k", help="Number of results.")] = None,
    fusion: Annotated[
        FusionMethod | None,
        typer.Option("--fusion", help="Score fusion: rrf or weighted."),
    ] = None,
    semantic_weight: Annotated[
        float | None,
        typer.Option("--semantic-weight", min=0.0, max=1.0, help="Explicit semantic weight (weighted fusion)."),
    ] = None,
    threshold: Annotated[float | None, typer.Option("--threshold", help="Minimum score.")] = None,
    rerank: Annotated[bool, typer.Option("--rerank", help="Rerank candidates with the configured backend.")] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Hybrid search over knowledge files."""
    options = SearchOptions(
        top_k=top_k,
        threshold=threshold,
        fusion=fusion,
        semantic_weight=semantic_weight,
        rerank=rerank,
    )
    with open_workspace(db) as ws:
        results = ws.kb.search(query, options)
    print_results(results)


@kb_app.command("reindex")
def reindex_cmd(
    clear: Annotated[
        bool,
        typer.Option("--clear", help="Drop stored knowledge embeddings first (needed after changing embedding.model)."),
    ] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Re-embed every knowledge file; unchanged chunks are reused unless --clear."""
    with open_workspace(db, check_model=not clear) as ws:
        if clear:
            removed = ws.kb.clear_embeddings()
            console.print(f"[dim]Cleared {removed} embeddings.[/]")
            check_embedding_model(ws.repo, ws.config.embedding.model)
        result = ws.kb.reindex_all()

    console.print(f"[green]✓[/] Reindexed {result.indexed} files, {result.skipped} skipped")
    for error in result.errors:
        console.print(f"  [red]✗[/] {error}")
    if result.errors:
        raise typer.Exit(1)


def print_results(results: list[SearchResult]) -> None:
    """Render search results; shared by kb and docs search."""
    if not results:
        console.print("[dim]No results.[/]")
        return
    first = results[0]
    console.print(
        f"[dim]query type: {first.query_type.value}  |  fusion: {first.fusion_method.value}"
        f"{'  |  reranked' if first.reranked else ''}[/]\n"
    )
    for i, r in enumerate(results, 1):
        heading = f"  [dim]{r.heading_path}[/]" if r.heading_path else ""
        console.print(f"[bold]{i}. {r.title}[/]  [cyan]{r.score:.4f}[/]{heading}")
        detail = f"sem {r.semantic_score:.3f}  lex {r.lexical_score:.3f}"
        if r.matched_terms:
            detail += f"  terms: {', '.join(r.matched_terms)}"
        console.print(f"   [dim]{detail}[/]")
        snippet = r.chunk_text.strip().replace("\n", " ")
        console.print(f"   {snippet[:200]}{'…' if len(snippet) > 200 else ''}\n")
