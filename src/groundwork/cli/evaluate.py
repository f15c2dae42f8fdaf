"""groundwork evaluate: offline retrieval metrics and ground-truth upkeep.

  groundwork evaluate run                  precision/recall + feedback precision
  groundwork evaluate add QUERY CHUNK_ID   mark a chunk relevant for a query
  groundwork evaluate list                 show ground truth
  groundwork evaluate remove ID            delete one ground-truth row
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from groundwork.cli.context import DEFAULT_DB, open_engine
from groundwork.db.models import GroundTruth
from groundwork.evaluation import feedback_precision, groundtruth_metrics

console = Console()

evaluate_app = typer.Typer(help="Evaluate retrieval quality.", no_args_is_help=True)


@evaluate_app.command("run")
def run_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Compute metrics against ground truth and feedback."""
    engine = open_engine(db)
    try:
        report = groundtruth_metrics(engine.repo)
        fb = feedback_precision(engine.repo)
    finally:
        engine.close()

    if report.queries:
        table = Table(title="Ground truth", show_header=True, header_style="bold")
        table.add_column("k", justify="right")
        table.add_column("Precision", justify="right")
        table.add_column("Recall", justify="right")
        for k in sorted(report.precision):
            table.add_row(str(k), f"{report.precision[k]:.3f}", f"{report.recall[k]:.3f}")
        console.print(table)
        console.print(f"[dim]{report.queries} queries evaluated[/]")
    else:
        console.print("[yellow]No ground-truth queries with runs to evaluate.[/]")
    for query in report.skipped:
        console.print(f"  [dim]skipped (no run): {query}[/]")

    parts = [f"P@{k}={v:.3f}" if v is not None else f"P@{k}=n/a" for k, v in fb.items()]
    console.print(f"Feedback precision: {'  '.join(parts)}")


@evaluate_app.command("add")
def add_cmd(
    query: Annotated[str, typer.Argument(help="Query text, exactly as asked.")],
    chunk_id: Annotated[str, typer.Argument(help="Chunk id.")],
    irrelevant: Annotated[
        bool, typer.Option("--irrelevant", help="Record the chunk as not relevant.")
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Add a ground-truth judgement."""
    engine = open_engine(db)
    try:
        item_id = engine.repo.add_ground_truth(
            GroundTruth(query=query, chunk_id=chunk_id, relevant=not irrelevant)
        )
    finally:
        engine.close()
    console.print(f"[green]✓[/] Ground truth #{item_id} added")


@evaluate_app.command("list")
def list_cmd(
    query: Annotated[str | None, typer.Option("--query", "-q", help="Only this query.")] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """List ground-truth judgements."""
    engine = open_engine(db)
    try:
        items = engine.repo.list_ground_truth(query)
    finally:
        engine.close()
    if not items:
        console.print("[dim]No ground truth recorded.[/]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Query")
    table.add_column("Chunk")
    table.add_column("Relevant", justify="center")
    for item in items:
        table.add_row(
            str(item.id), item.query, item.chunk_id, "[green]✓[/]" if item.relevant else "[red]✗[/]"
        )
    console.print(table)


@evaluate_app.command("remove")
def remove_cmd(
    item_id: Annotated[int, typer.Argument(help="Ground-truth row id.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Delete a ground-truth judgement."""
    engine = open_engine(db)
    try:
        removed = engine.repo.delete_ground_truth(item_id)
    finally:
        engine.close()
    if not removed:
        console.print(f"[yellow]Ground truth #{item_id} not found.[/]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Ground truth #{item_id} removed")
