"""codesearch reindex — refresh part of an existing workspace index.

Usage:
  codesearch reindex path/to/repo --stale          # changed or deleted files only
  codesearch reindex path/to/repo --folder src/api # one folder subtree
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from codesearch.cli.common import console, load_cli_config
from codesearch.cli.errors import (
    err_already_indexing,
    err_folder_not_found,
    err_workspace_not_found,
    err_workspace_not_indexed,
)
from codesearch.cli.index import print_summary
from codesearch.exceptions import AlreadyIndexingError
from codesearch.index.indexer import absolute_path
from codesearch.session import open_session


def reindex_cmd(
    workspace: Annotated[Path, typer.Argument(help="Indexed workspace root.")],
    folder: Annotated[
        str | None,
        typer.Option("--folder", help="Reindex only this folder (relative to the workspace)."),
    ] = None,
    stale: Annotated[
        bool,
        typer.Option("--stale", help="Reindex only files whose content changed."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: ~/.codesearch/index.db)."),
    ] = None,
) -> None:
    """Reindex a workspace, one of its folders, or only its stale files."""
    root = Path(absolute_path(workspace))
    if not root.is_dir():
        console.print(err_workspace_not_found(str(workspace)))
        raise typer.Exit(1)

    cfg = load_cli_config(root, db)
    with open_session(cfg) as session:
        if session.repo.get_workspace_by_path(str(root)) is None:
            console.print(err_workspace_not_indexed(str(root)))
            raise typer.Exit(1)
        try:
            if stale:
                result = session.indexer.reindex_stale_files(root)
            elif folder:
                if not (root / folder).is_dir():
                    console.print(err_folder_not_found(folder, str(root)))
                    raise typer.Exit(1)
                result = session.indexer.reindex_folder(root, folder)
            else:
                result = session.indexer.index_workspace(root)
        except AlreadyIndexingError as exc:
            console.print(err_already_indexing())
            raise typer.Exit(1) from exc

    print_summary(result)
