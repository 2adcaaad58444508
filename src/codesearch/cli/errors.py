"""codesearch rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from codesearch.cli.errors import err_no_db
    console.print(err_no_db(str(db_path)))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str) -> str:
    """No index database at *db_path*."""
    return (
        f"[red]Error:[/] No index found at '{db_path}'.\n"
        "  Run:  codesearch index <workspace>"
    )


def err_workspace_not_found(path: str) -> str:
    """Workspace directory does not exist on disk."""
    return (
        f"[red]Error:[/] Workspace folder not found: '{path}'\n"
        "  Pass an existing directory, e.g.:  codesearch index ."
    )


def err_workspace_not_indexed(path: str) -> str:
    """Workspace exists on disk but has no index."""
    return (
        f"[yellow]Not indexed:[/] '{path}' has no index yet.\n"
        f"  Run:  codesearch index {path}"
    )


def err_file_not_indexed(path: str) -> str:
    return (
        f"[yellow]Not indexed:[/] '{path}' is not in the index.\n"
        "  Run:  codesearch status --workspace <workspace>  to list indexed files."
    )


def err_already_indexing() -> str:
    return (
        "[red]Error:[/] An indexing run is already in progress.\n"
        "  Wait for it to finish, then run the command again."
    )


def err_embedding(message: str, model: str) -> str:
    """Embedding provider failed (missing key, unreachable server, wrong dimensions)."""
    hint = (
        "  Start Ollama and pull the model:  ollama pull " + model.split("/", 1)[1]
        if model.startswith("ollama/")
        else "  Check the provider API key and embedding.model in codesearch.yaml."
    )
    return f"[red]Error:[/] Embedding failed: {message}\n{hint}"


def err_search_failed(message: str) -> str:
    return (
        f"[red]Error:[/] Search failed: {message}\n"
        "  Check that the embedding model is reachable, then retry."
    )


def err_config(message: str) -> str:
    """codesearch.yaml or the global config could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n  {message}\n"
        "  Fix the file and run the command again."
    )


def err_bad_sort(value: str, allowed: tuple[str, ...]) -> str:
    return (
        f"[red]Error:[/] Unknown sort order '{value}'.\n"
        f"  Use one of:  {', '.join(allowed)}"
    )


def err_remove_target() -> str:
    return (
        "[red]Error:[/] Nothing to remove.\n"
        "  Pass exactly one of:  --workspace PATH  or  --file PATH"
    )


def err_folder_not_found(folder: str, workspace: str) -> str:
    return (
        f"[red]Error:[/] Folder '{folder}' not found in '{workspace}'.\n"
        "  Pass a folder path relative to the workspace root."
    )
