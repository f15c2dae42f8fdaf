"""groundwork export: write a run's audit bundle to a zip file."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from groundwork.cli.context import DEFAULT_DB, open_engine
from groundwork.cli.errors import err_unknown_run
from groundwork.errors import UnknownRun

console = Console()


def export_cmd(
    run_id: Annotated[str, typer.Argument(help="Run id printed by 'groundwork ask'.")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Zip file or directory (default: ./run_<id>.zip)."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Export a run with its artifacts, feedback and evidence."""
    dest = output or Path.cwd()
    engine = open_engine(db)
    try:
        written = engine.export_run(run_id, dest)
    except UnknownRun as exc:
        console.print(err_unknown_run(run_id))
        raise typer.Exit(1) from exc
    finally:
        engine.close()
    console.print(f"[green]✓[/] Exported run {run_id} → {written}")
