"""locus links: typed links between knowledge files and graph queries.

Usage:
  locus links add /a.md /b.md requires --notes "read first"
  locus links rm /a.md /b.md requires
  locus links show /a.md
  locus links traverse /a.md --depth 3 --relationship requires
  locus links path /a.md /d.md
  locus links stats
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from locus.cli.context import DEFAULT_DB, open_workspace
from locus.cli.errors import err_link_rejected
from locus.db.models import KnowledgeLink, Relationship
from locus.graph.traversal import MAX_DEPTH, MIN_DEPTH, Direction, LinkGraph

console = Console()

links_app = typer.Typer(help="Manage and query links between knowledge files.", add_completion=False)

_DbOption = Annotated[Path, typer.Option("--db", help="Path to the locus database.")]


def _edge(link: KnowledgeLink, arrow: str = "→") -> str:
    arrow = "↔" if link.bidirectional else arrow
    notes = f"  [dim]{link.notes}[/]" if link.notes else ""
    return f"{link.source} {arrow} {link.target}  [cyan]{link.relationship.value}[/]{notes}"


@links_app.command("add")
def add_cmd(
    source: Annotated[str, typer.Argument(help="Source file path.")],
    target: Annotated[str, typer.Argument(help="Target file path.")],
    relationship: Annotated[Relationship, typer.Argument(help="Relationship type.")],
    bidirectional: Annotated[bool, typer.Option("--bidirectional", "-b", help="Link applies both ways.")] = False,
    notes: Annotated[str | None, typer.Option("--notes", help="Free-text note on the link.")] = None,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Create or update a link."""
    with open_workspace(db) as ws:
        result = ws.links.create_link(
            source, target, relationship, bidirectional=bidirectional, notes=notes
        )
    if not result.success:
        console.print(err_link_rejected(result.error or "unknown error"))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] {_edge(result.link)}")


@links_app.command("rm")
def rm_cmd(
    source: Annotated[str, typer.Argument(help="Source file path.")],
    target: Annotated[str, typer.Argument(help="Target file path.")],
    relationship: Annotated[Relationship, typer.Argument(help="Relationship type.")],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Delete one link."""
    with open_workspace(db) as ws:
        result = ws.links.delete_link(source, target, relationship)
    if result.deleted:
        console.print(f"[green]✓[/] Removed {source} → {target} ({relationship.value})")
    else:
        console.print("[dim]No such link.[/]")


@links_app.command("show")
def show_cmd(
    path: Annotated[str, typer.Argument(help="File path.")],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Show a file's outgoing and incoming links."""
    with open_workspace(db) as ws:
        file_links = ws.links.get_links_for_file(path)
    console.print(f"[bold]{file_links.path}[/]  ({file_links.total} links)")
    for link in file_links.outgoing:
        console.print(f"  out  {_edge(link)}")
    for link in file_links.incoming:
        console.print(f"  in   {_edge(link)}")


@links_app.command("traverse")
def traverse_cmd(
    start: Annotated[str, typer.Argument(help="Start file path.")],
    depth: Annotated[
        int | None,
        typer.Option("--depth", "-d", help=f"Hops to follow ({MIN_DEPTH}-{MAX_DEPTH})."),
    ] = None,
    relationship: Annotated[
        Relationship | None,
        typer.Option("--relationship", "-r", help="Only follow this relationship."),
    ] = None,
    direction: Annotated[Direction, typer.Option("--direction", help="Edge direction to follow.")] = Direction.BOTH,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Breadth-first walk of the link graph from a file."""
    with open_workspace(db) as ws:
        graph = LinkGraph.from_repo(ws.repo)
        result = graph.traverse(
            start,
            depth if depth is not None else ws.config.graph.default_depth,
            relationship,
            direction,
        )

    tree = Tree(f"[bold]{result.start}[/]")
    branches = {0: tree}
    for node in result.nodes[1:]:
        parent = branches.get(node.depth - 1, tree)
        branches[node.depth] = parent.add(f"{node.path}  [dim]depth {node.depth}[/]")
    console.print(tree)
    console.print(f"[dim]{len(result.nodes)} files, {result.unique_links} links[/]")


@links_app.command("path")
def path_cmd(
    source: Annotated[str, typer.Argument(help="Start file path.")],
    target: Annotated[str, typer.Argument(help="Goal file path.")],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Shortest chain of links between two files."""
    with open_workspace(db) as ws:
        chain = LinkGraph.from_repo(ws.repo).find_path(source, target)
    if chain is None:
        console.print(f"[yellow]No path[/] between {source} and {target}.")
        raise typer.Exit(1)
    if not chain:
        console.print("[dim]Same file.[/]")
        return
    for link in chain:
        console.print(f"  {_edge(link)}")
    console.print(f"[dim]{len(chain)} hop{'s' if len(chain) != 1 else ''}[/]")


@links_app.command("stats")
def stats_cmd(db: _DbOption = DEFAULT_DB) -> None:
    """Link counts by relationship."""
    with open_workspace(db) as ws:
        stats = ws.links.link_stats()
    table = Table(show_header=True, header_style="bold", title=f"{stats.total} links")
    table.add_column("Relationship")
    table.add_column("Count", justify="right")
    for rel, count in stats.by_relationship.items():
        table.add_row(rel.value, str(count))
    console.print(table)
