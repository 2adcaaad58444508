"""codesearch tree — the indexed folder/file hierarchy of a workspace."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.tree import Tree

from codesearch.cli.common import console, load_cli_config
from codesearch.cli.errors import err_no_db, err_workspace_not_indexed
from codesearch.db.repository import Repository
from codesearch.index.indexer import absolute_path
from codesearch.session import open_session


def tree_cmd(
    workspace: Annotated[Path, typer.Argument(help="Indexed workspace root.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: ~/.codesearch/index.db)."),
    ] = None,
) -> None:
    """Show indexed folders and files with their chunk counts."""
    ws_path = absolute_path(workspace)
    cfg = load_cli_config(Path(ws_path), db)
    if not cfg.storage.db_path.exists():
        console.print(err_no_db(str(cfg.storage.db_path)))
        raise typer.Exit(1)

    with open_session(cfg) as session:
        ws = session.repo.get_workspace_by_path(ws_path)
        if ws is None:
            console.print(err_workspace_not_indexed(ws_path))
            raise typer.Exit(1)
        root = Tree(f"[bold]{ws.name}[/] [dim]{ws.path}[/]")
        _add_level(session.repo, ws.id, None, root)
    console.print(root)


def _add_level(repo: Repository, workspace_id: str, folder_id: str | None, node: Tree) -> None:
    for folder in repo.get_child_folders(workspace_id, folder_id):
        branch = node.add(f"[bold blue]{folder.name}/[/]")
        _add_level(repo, workspace_id, folder.id, branch)
    for f in repo.get_files_in_folder(workspace_id, folder_id):
        node.add(f"{f.name} [dim]({repo.count_chunks(file_id=f.id)} chunks)[/]")
