"""codesearch status — what is indexed, and what changed on disk since.

Without --workspace: one row per indexed workspace.
With --workspace: one row per indexed file, stale files flagged (add
--stale to list only those).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from codesearch.cli.common import console, load_cli_config
from codesearch.cli.errors import err_no_db, err_workspace_not_indexed
from codesearch.config import CodeSearchConfig
from codesearch.db.schema import schema_version
from codesearch.index.indexer import absolute_path
from codesearch.session import Session, open_session


def status_cmd(
    workspace: Annotated[
        Path | None,
        typer.Option("--workspace", "-w", help="Show per-file status for this workspace."),
    ] = None,
    stale: Annotated[
        bool,
        typer.Option("--stale", help="Only list files changed since they were indexed."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: ~/.codesearch/index.db)."),
    ] = None,
) -> None:
    """Show index status."""
    ws_path = absolute_path(workspace) if workspace is not None else None
    cfg = load_cli_config(Path(ws_path) if ws_path else None, db)
    if not cfg.storage.db_path.exists():
        console.print(err_no_db(str(cfg.storage.db_path)))
        raise typer.Exit(1)

    with open_session(cfg) as session:
        _show_index_panel(session, cfg)
        if ws_path is None:
            _show_workspaces(session)
        else:
            if session.repo.get_workspace_by_path(ws_path) is None:
                console.print(err_workspace_not_indexed(ws_path))
                raise typer.Exit(1)
            _show_files(session, ws_path, only_stale=stale)


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_index_panel(session: Session, cfg: CodeSearchConfig) -> None:
    lines = [
        f"Database:   {cfg.storage.db_path}",
        f"Schema:     v{schema_version(session.conn)}",
        f"Model:      {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Files:      {session.repo.count_indexed_files()}",
        f"Chunks:     {session.repo.count_chunks()}",
        f"Vectors:    {session.vectors.count()}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))


def _show_workspaces(session: Session) -> None:
    summaries = session.indexer.workspace_summaries()
    if not summaries:
        console.print("[dim]No workspaces indexed yet.[/]")
        return

    table = Table(title="Workspaces", show_lines=False)
    table.add_column("Workspace", style="bold")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Last updated")
    for s in summaries:
        status_style = {"active": "green", "indexing": "yellow", "error": "red"}.get(s.status, "")
        table.add_row(
            s.path,
            f"[{status_style}]{s.status}[/]" if status_style else s.status,
            str(s.total_files),
            str(s.total_chunks),
            (s.last_updated or "-")[:19].replace("T", " "),
        )
    console.print(table)


def _show_files(session: Session, ws_path: str, only_stale: bool) -> None:
    entries = session.indexer.get_index_entries(ws_path)
    stale_count = sum(1 for e in entries if e.is_stale)
    if only_stale:
        entries = [e for e in entries if e.is_stale]

    table = Table(title=ws_path)
    table.add_column("File")
    table.add_column("Chunks", justify="right")
    table.add_column("Last indexed")
    table.add_column("State")
    for entry in entries:
        table.add_row(
            entry.relative_path,
            str(entry.chunk_count),
            entry.file.last_indexed_at[:19].replace("T", " "),
            "[yellow]stale[/]" if entry.is_stale else "[green]ok[/]",
        )
    console.print(table)

    if stale_count:
        console.print(
            f"[yellow]⚠[/] {stale_count} file(s) changed since indexing.\n"
            f"  Run:  codesearch reindex {ws_path} --stale"
        )
    else:
        console.print("[green]✓[/] Index is up to date.")
