"""Shared CLI plumbing: config + logging setup and engine opening."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from groundwork.cli.errors import err_config, err_no_db
from groundwork.config import ConfigError, GroundworkConfig, load_config
from groundwork.engine import Engine

DEFAULT_DB = Path(".groundwork.db")

err_console = Console(stderr=True)


def load_cli_config() -> GroundworkConfig:
    """Load config from the working directory or exit 1 with an actionable message."""
    try:
        return load_config()
    except ConfigError as exc:
        err_console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def configure_logging(cfg: GroundworkConfig, verbose: bool = False) -> None:
    """Route library logging through a RichHandler on stderr."""
    level = logging.DEBUG if verbose else getattr(logging, cfg.logging.level)
    logger = logging.getLogger("groundwork")
    logger.handlers = [
        RichHandler(console=err_console, show_path=False, rich_tracebacks=verbose)
    ]
    logger.setLevel(level)
    logger.propagate = False


def open_engine(db: Path, *, must_exist: bool = True, verbose: bool = False) -> Engine:
    """Load config, set up logging, and open the engine on *db*.

    Exits 1 when *must_exist* is set and the database file is missing.
    """
    if must_exist and not db.exists():
        err_console.print(err_no_db(str(db)))
        raise typer.Exit(1)
    cfg = load_cli_config()
    configure_logging(cfg, verbose)
    return Engine.open(db, cfg)
