"""Tests for locus status."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from locus.cli.main import app

runner = CliRunner()


def test_status_no_db(cli_env: Path) -> None:
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "No database" in result.output
    assert "Config" in result.output


def test_status_shows_config(cli_env: Path, monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    result = runner.invoke(app, ["status"])
    assert "openai/text-embedding-3-small" in result.output
    assert "missing key" in result.output
    assert "none" in result.output


def test_status_counts(cli_env: Path) -> None:
    runner.invoke(app, ["init"])
    runner.invoke(app, ["kb", "write", "/a.md"], input="# A\n\nAlpha.")
    runner.invoke(app, ["kb", "write", "/b.md"], input="# B\n\nBeta.")
    runner.invoke(app, ["links", "add", "/a.md", "/b.md", "requires"])

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "Memory" in result.output
    assert "Files: 2" in result.output
    assert "knowledge 2" in result.output
    assert "64 dims" in result.output
    assert "requires 1" in result.output


def test_status_invalid_config(cli_env: Path) -> None:
    (cli_env / "locus.yaml").write_text("search:\n  fusion: borda\n", encoding="utf-8")
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 1
    assert "search.fusion" in result.output
