"""Helpers shared by the codesearch commands: console, logging, config loading."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from codesearch.cli.errors import err_config
from codesearch.config import CodeSearchConfig, ConfigError, load_config

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Route codesearch logs through Rich on stderr (DEBUG with --verbose)."""
    logger = logging.getLogger("codesearch")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=err_console, show_path=False))
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def load_cli_config(project_dir: Path | None, db: Path | None) -> CodeSearchConfig:
    """load_config() with the --db override applied; config errors exit 1."""
    try:
        cfg = load_config(project_dir)
    except (ConfigError, ValueError, yaml.YAMLError) as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.storage.db_path = db
    return cfg

