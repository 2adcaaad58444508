"""Tests for codesearch index."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from codesearch.cli.main import app
from codesearch.db.connection import Database
from codesearch.db.repository import Repository

runner = CliRunner()


def _count_files(db: Path) -> int:
    with Database(db) as conn:
        return Repository(conn).count_indexed_files()


def test_index_workspace(cli_env: Path, workspace: Path) -> None:
    result = runner.invoke(app, ["index", str(workspace), "--db", str(cli_env)])
    assert result.exit_code == 0, result.output
    assert "4 indexed" in result.output
    assert "0 failed" in result.output
    assert _count_files(cli_env) == 4


def test_index_again_skips_unchanged(cli_env: Path, workspace: Path) -> None:
    runner.invoke(app, ["index", str(workspace), "--db", str(cli_env)])
    result = runner.invoke(app, ["index", str(workspace), "--db", str(cli_env)])
    assert result.exit_code == 0
    assert "0 indexed" in result.output
    assert "4 unchanged" in result.output


def test_index_single_file(cli_env: Path, workspace: Path) -> None:
    result = runner.invoke(
        app,
        ["index", str(workspace), "--file", str(workspace / "main.py"), "--db", str(cli_env)],
    )
    assert result.exit_code == 0, result.output
    assert "1 indexed" in result.output
    assert _count_files(cli_env) == 1


def test_index_missing_workspace_exits_1(cli_env: Path, tmp_path: Path) -> None:
    result = runner.invoke(app, ["index", str(tmp_path / "missing"), "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "Workspace folder not found" in result.output


def test_index_respects_project_config(cli_env: Path, workspace: Path) -> None:
    (workspace / "codesearch.yaml").write_text(
        "indexing:\n  include_patterns: ['**/*.py']\n", encoding="utf-8"
    )
    result = runner.invoke(app, ["index", str(workspace), "--db", str(cli_env)])
    assert result.exit_code == 0, result.output
    assert "3 indexed" in result.output


def test_index_invalid_config_exits_1(cli_env: Path, workspace: Path) -> None:
    (workspace / "codesearch.yaml").write_text("embedding:\n  dimensions: 0\n", encoding="utf-8")
    result = runner.invoke(app, ["index", str(workspace), "--db", str(cli_env)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


# ---------------------------------------------------------------------------
# codesearch --version / version
# ---------------------------------------------------------------------------


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "codesearch" in result.output


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.startswith("codesearch ")
