"""groundwork weights: inspect or relearn hybrid retrieval weights."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from groundwork.cli.context import DEFAULT_DB, open_engine
from groundwork.db.models import RetrievalWeights

console = Console()

weights_app = typer.Typer(help="Show or recompute retrieval weights.", no_args_is_help=True)


@weights_app.command("show")
def show_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Show the current retrieval weights."""
    engine = open_engine(db)
    try:
        weights = engine.weights()
    finally:
        engine.close()
    _print_weights(weights)


@weights_app.command("recompute")
def recompute_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Recompute the weights from rated runs."""
    engine = open_engine(db)
    try:
        weights = engine.recompute_weights()
    finally:
        engine.close()
    if weights is None:
        console.print("[yellow]No rated runs with retrieval data; weights unchanged.[/]")
        return
    console.print("[green]✓[/] Weights updated")
    _print_weights(weights)


def _print_weights(weights: RetrievalWeights) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Name", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("w_sim", f"{weights.w_sim:.3f}")
    table.add_row("w_bm25", f"{weights.w_bm25:.3f}")
    table.add_row("w_llm", f"{weights.w_llm:.3f}")
    if weights.updated_at:
        table.add_row("updated", f"[dim]{weights.updated_at}[/]")
    console.print(table)
