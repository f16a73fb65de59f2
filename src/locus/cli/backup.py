"""locus backup: export and import the knowledge base as JSON."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from locus.cli.context import DEFAULT_DB, open_workspace
from locus.cli.errors import err_bad_backup
from locus.knowledge.backup import import_backup, read_backup, write_backup

console = Console()

backup_app = typer.Typer(help="Export or restore knowledge files and links.", add_completion=False)

_DbOption = Annotated[Path, typer.Option("--db", help="Path to the locus database.")]


@backup_app.command("export")
def export_cmd(
    output: Annotated[
        Path | None,
        typer.Argument(help="Output file. Defaults to locus-kb-backup-<date>.json."),
    ] = None,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Write every knowledge file and link to a JSON file."""
    target = output or Path(f"locus-kb-backup-{date.today().isoformat()}.json")
    with open_workspace(db) as ws:
        data = write_backup(ws.repo, target)
    stats = data["stats"]
    console.print(
        f"[green]✓[/] Exported {stats['files']} files and {stats['links']} links to {target}"
    )


@backup_app.command("import")
def import_cmd(
    source: Annotated[Path, typer.Argument(help="Backup file to restore.", exists=True, dir_okay=False)],
    overwrite: Annotated[bool, typer.Option("--overwrite", help="Replace files that already exist.")] = False,
    no_reindex: Annotated[bool, typer.Option("--no-reindex", help="Skip re-embedding imported files.")] = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Restore knowledge files and links from a JSON backup."""
    try:
        data = read_backup(source)
    except ValueError as exc:
        console.print(err_bad_backup(str(source), str(exc)))
        raise typer.Exit(1)

    with open_workspace(db) as ws:
        result = import_backup(ws.kb, ws.links, data, overwrite=overwrite, reindex=not no_reindex)
        ws.background.wait()

    console.print(
        f"[green]✓[/] Files: {result.files_imported} imported, {result.files_skipped} skipped  |  "
        f"Links: {result.links_imported} imported, {result.links_skipped} skipped"
    )
    for error in result.errors:
        console.print(f"  [red]✗[/] {error}")
    if not result.success:
        raise typer.Exit(1)
