"""codesearch remove — drop a workspace or a single file from the index.

Removes vectors first, then chunks, then file/folder/workspace records.

Usage:
  codesearch remove --workspace path/to/repo
  codesearch remove --file path/to/repo/src/app.py --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from codesearch.cli.common import console, load_cli_config
from codesearch.cli.errors import (
    err_file_not_indexed,
    err_no_db,
    err_remove_target,
    err_workspace_not_indexed,
)
from codesearch.index.indexer import absolute_path
from codesearch.session import open_session


def remove_cmd(
    workspace: Annotated[
        Path | None,
        typer.Option("--workspace", "-w", help="Workspace root to remove from the index."),
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Single file to remove from the index."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: ~/.codesearch/index.db)."),
    ] = None,
) -> None:
    """Remove a workspace or a file from the index."""
    if (workspace is None) == (file is None):
        console.print(err_remove_target())
        raise typer.Exit(1)

    cfg = load_cli_config(None, db)
    if not cfg.storage.db_path.exists():
        console.print(err_no_db(str(cfg.storage.db_path)))
        raise typer.Exit(1)

    with open_session(cfg) as session:
        if workspace is not None:
            ws_path = absolute_path(workspace)
            if session.repo.get_workspace_by_path(ws_path) is None:
                console.print(err_workspace_not_indexed(ws_path))
                raise typer.Exit(0)
            files = session.repo.count_indexed_files(ws_path)
            chunks = session.repo.count_chunks(workspace_path=ws_path)
            console.print(f"\nRemove workspace: [bold]{ws_path}[/]")
            console.print(f"  Files: {files}  |  Chunks: {chunks}")
            _confirm(yes)
            session.indexer.delete_workspace_index(ws_path)
            console.print(f"\n[green]✓[/] Removed: {ws_path}")
            return

        file_path = absolute_path(file)
        indexed = session.repo.get_indexed_file_by_path(file_path)
        if indexed is None:
            console.print(err_file_not_indexed(file_path))
            raise typer.Exit(0)
        chunks = session.repo.count_chunks(file_id=indexed.id)
        console.print(f"\nRemove file: [bold]{file_path}[/]")
        console.print(f"  Chunks: {chunks}")
        _confirm(yes)
        session.indexer.delete_file_index(file_path)
        console.print(f"\n[green]✓[/] Removed: {indexed.path}")


def _confirm(yes: bool) -> None:
    if not yes and not typer.confirm("Confirm removal?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)
