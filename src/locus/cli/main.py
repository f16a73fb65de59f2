"""Locus CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
import sys
from typing import Annotated

import structlog
import typer

from locus.cli.backup import backup_app
from locus.cli.docs import docs_app
from locus.cli.init import init_cmd
from locus.cli.kb import kb_app
from locus.cli.links import links_app
from locus.cli.status import status_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("locus")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"locus {_version()}")
        raise typer.Exit()


def configure_logging(verbose: bool = False) -> None:
    """Render structlog events to stderr; WARNING and up unless *verbose*."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


app = typer.Typer(
    name="locus",
    help=(
        "Locus: local document memory with hybrid search.\n\n"
        "  locus kb      Knowledge files: write, read, search.\n"
        "  locus links   Typed links between files and graph queries.\n"
        "  locus docs    Large-document library."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logs on stderr."),
    ] = False,
) -> None:
    """Locus: local document memory with hybrid search."""
    configure_logging(verbose)


app.command("init")(init_cmd)
app.command("status")(status_cmd)
app.add_typer(kb_app, name="kb")
app.add_typer(links_app, name="links")
app.add_typer(docs_app, name="docs")
app.add_typer(backup_app, name="backup")


if __name__ == "__main__":
    app()
