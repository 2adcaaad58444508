"""codesearch search — natural-language search over indexed code.

Usage:
  codesearch search "where are retries configured"
  codesearch search "jwt validation" --workspace . --include "*.py" --exclude "tests/**"
  codesearch search "parse config" --sort path --plain
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.syntax import Syntax

from codesearch.cli.common import console, load_cli_config
from codesearch.cli.errors import (
    err_bad_sort,
    err_embedding,
    err_no_db,
    err_search_failed,
    err_workspace_not_indexed,
)
from codesearch.exceptions import EmbeddingError, SearchFailedError
from codesearch.index.indexer import absolute_path
from codesearch.search.retriever import SORT_FIELDS, SearchResult, format_results, sort_results
from codesearch.session import open_session


def search_cmd(
    query: Annotated[str, typer.Argument(help="What to look for, in plain language.")],
    workspace: Annotated[
        Path | None,
        typer.Option("--workspace", "-w", help="Only search this workspace."),
    ] = None,
    max_results: Annotated[
        int | None,
        typer.Option("--max-results", "-n", min=1, help="Number of results (default: 10)."),
    ] = None,
    include: Annotated[
        str | None,
        typer.Option("--include", help="Comma-separated globs a result path must match."),
    ] = None,
    exclude: Annotated[
        str | None,
        typer.Option("--exclude", help="Comma-separated globs that drop a result."),
    ] = None,
    sort: Annotated[
        str,
        typer.Option("--sort", help="relevance | path | lines"),
    ] = "relevance",
    plain: Annotated[
        bool,
        typer.Option("--plain", help="Plain markdown output (for piping)."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Index database (default: ~/.codesearch/index.db)."),
    ] = None,
) -> None:
    """Search indexed code."""
    if sort not in SORT_FIELDS:
        console.print(err_bad_sort(sort, SORT_FIELDS))
        raise typer.Exit(1)

    ws_path = absolute_path(workspace) if workspace is not None else None
    cfg = load_cli_config(Path(ws_path) if ws_path else None, db)
    if not cfg.storage.db_path.exists():
        console.print(err_no_db(str(cfg.storage.db_path)))
        raise typer.Exit(1)

    with open_session(cfg) as session:
        if ws_path is not None and session.repo.get_workspace_by_path(ws_path) is None:
            console.print(err_workspace_not_indexed(ws_path))
            raise typer.Exit(1)
        try:
            if ws_path is not None:
                results = session.retriever.search_in_workspace(
                    query, ws_path, max_results, include=include, exclude=exclude
                )
            else:
                results = session.retriever.search(
                    query, max_results, include=include, exclude=exclude
                )
        except SearchFailedError as exc:
            if isinstance(exc.__cause__, EmbeddingError):
                console.print(err_embedding(str(exc.__cause__), cfg.embedding.model))
            else:
                console.print(err_search_failed(str(exc)))
            raise typer.Exit(1) from exc

    results = sort_results(results, sort)
    if plain:
        typer.echo(format_results(results))
        return
    _print_results(results)


def _print_results(results: list[SearchResult]) -> None:
    if not results:
        console.print("[yellow]No results found.[/]")
        return
    console.print(f"Found {len(results)} result(s):\n")
    for i, result in enumerate(results, start=1):
        lexer = Syntax.guess_lexer(result.file_path, code=result.content)
        console.print(
            Panel(
                Syntax(
                    result.content,
                    lexer,
                    line_numbers=True,
                    start_line=result.line_start,
                    word_wrap=True,
                ),
                title=(
                    f"[bold]{i}. {result.relative_path}[/] "
                    f"[dim](lines {result.line_start}-{result.line_end})[/]"
                ),
                subtitle=f"score {result.score * 100:.1f}%",
                title_align="left",
                subtitle_align="right",
            )
        )
