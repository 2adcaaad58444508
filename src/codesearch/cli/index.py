"""codesearch index — build or refresh the index of a workspace.

Usage:
  codesearch index                      # current directory
  codesearch index path/to/repo
  codesearch index path/to/repo --file src/app.py --file src/util.py

Unchanged files (same content hash) are skipped. Files that fail to read or
embed are reported and left in their previous indexed state.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from codesearch.cli.common import console, load_cli_config
from codesearch.cli.errors import err_already_indexing, err_workspace_not_found
from codesearch.exceptions import AlreadyIndexingError
from codesearch.index.indexer import IndexRunResult, absolute_path
from codesearch.session import open_session


def index_cmd(
    workspace: Annotated[
        Path,
        typer.Argument(help="Workspace root to index (default: current directory)."),
    ] = Path("."),
    file: Annotated[
        list[Path] | None,
        typer.Option("--file", "-f", help="Index only this file (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: ~/.codesearch/index.db)."),
    ] = None,
) -> None:
    """Index a workspace so it can be searched."""
    root = Path(absolute_path(workspace))
    if not root.is_dir():
        console.print(err_workspace_not_found(str(workspace)))
        raise typer.Exit(1)

    cfg = load_cli_config(root, db)
    with open_session(cfg) as session:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task(f"Indexing {root.name}", total=None)

            def on_progress(processed: int, total: int, rel_path: str) -> None:
                progress.update(task, completed=processed, total=total, description=rel_path)

            try:
                if file:
                    result = session.indexer.index_files(
                        [absolute_path(f) for f in file], root, progress=on_progress
                    )
                else:
                    result = session.indexer.index_workspace(root, progress=on_progress)
            except AlreadyIndexingError as exc:
                console.print(err_already_indexing())
                raise typer.Exit(1) from exc

    print_summary(result)


def print_summary(result: IndexRunResult) -> None:
    console.print(f"\n[bold]{result.workspace_path}[/]")
    console.print(
        f"  [green]✓[/] {len(result.indexed)} indexed  "
        f"[dim]↷ {len(result.skipped)} unchanged[/]  "
        f"{'[red]' if result.failed else '[dim]'}✗ {len(result.failed)} failed[/]"
    )
    for rel_path, message in result.failed:
        console.print(f"    [red]✗[/] {rel_path}: {message}")
    if result.cancelled:
        console.print("[yellow]Indexing cancelled before all files were processed.[/]")
