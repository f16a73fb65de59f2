"""Tests for locus links commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from locus.cli.main import app

runner = CliRunner()


@pytest.fixture
def files(cli_env: Path) -> Path:
    assert runner.invoke(app, ["init"]).exit_code == 0
    for name in ("a", "b", "c", "d"):
        runner.invoke(app, ["kb", "write", f"/{name}.md"], input=f"# {name}\n\ncontent {name}")
    return cli_env


def _add(source: str, target: str, rel: str, *extra: str):
    return runner.invoke(app, ["links", "add", source, target, rel, *extra])


def test_add_and_show(files: Path) -> None:
    result = _add("/a.md", "/b.md", "requires", "--notes", "read first")
    assert result.exit_code == 0, result.output
    assert "requires" in result.output

    result = runner.invoke(app, ["links", "show", "/b.md"])
    assert "1 links" in result.output
    assert "read first" in result.output


def test_add_rejects_missing_file(files: Path) -> None:
    result = _add("/a.md", "/zzz.md", "requires")
    assert result.exit_code == 1
    assert "Target file not found" in result.output


def test_add_rejects_unknown_relationship(files: Path) -> None:
    result = _add("/a.md", "/b.md", "likes")
    assert result.exit_code != 0


def test_rm(files: Path) -> None:
    _add("/a.md", "/b.md", "extends")
    result = runner.invoke(app, ["links", "rm", "/a.md", "/b.md", "extends"])
    assert "Removed" in result.output
    result = runner.invoke(app, ["links", "rm", "/a.md", "/b.md", "extends"])
    assert "No such link" in result.output


def test_traverse(files: Path) -> None:
    _add("/a.md", "/b.md", "requires")
    _add("/b.md", "/c.md", "requires")
    _add("/c.md", "/d.md", "requires")
    result = runner.invoke(app, ["links", "traverse", "/a.md", "--depth", "2", "--direction", "outgoing"])
    assert result.exit_code == 0, result.output
    assert "/c.md" in result.output
    assert "/d.md" not in result.output
    assert "3 files, 3 links" in result.output


def test_path(files: Path) -> None:
    _add("/a.md", "/b.md", "references")
    _add("/c.md", "/b.md", "references")
    result = runner.invoke(app, ["links", "path", "/a.md", "/c.md"])
    assert result.exit_code == 0
    assert "2 hops" in result.output

    assert "Same file" in runner.invoke(app, ["links", "path", "/a.md", "/a.md"]).output

    result = runner.invoke(app, ["links", "path", "/a.md", "/d.md"])
    assert result.exit_code == 1
    assert "No path" in result.output


def test_stats(files: Path) -> None:
    _add("/a.md", "/b.md", "requires")
    _add("/a.md", "/c.md", "contradicts")
    result = runner.invoke(app, ["links", "stats"])
    assert result.exit_code == 0
    assert "2 links" in result.output
    assert "contradicts" in result.output


def test_deleting_file_removes_its_links(files: Path) -> None:
    _add("/a.md", "/b.md", "requires")
    runner.invoke(app, ["kb", "rm", "/b.md", "--yes"])
    result = runner.invoke(app, ["links", "show", "/a.md"])
    assert "0 links" in result.output
