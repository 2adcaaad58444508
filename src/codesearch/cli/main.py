"""codesearch CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from codesearch.cli.common import setup_logging
from codesearch.cli.index import index_cmd
from codesearch.cli.reindex import reindex_cmd
from codesearch.cli.remove import remove_cmd
from codesearch.cli.search import search_cmd
from codesearch.cli.status import status_cmd
from codesearch.cli.tree import tree_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("codesearch")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"codesearch {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="codesearch",
    help=(
        "codesearch — semantic search over your code.\n\n"
        "  codesearch index .        Index the current workspace.\n"
        "  codesearch search QUERY   Find code by meaning."
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
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """codesearch — semantic search over your code."""
    setup_logging(verbose)


app.command("index")(index_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("reindex")(reindex_cmd)
app.command("tree")(tree_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed codesearch version."""
    typer.echo(f"codesearch {_installed_version()}")


if __name__ == "__main__":
    app()
