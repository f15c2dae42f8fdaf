"""groundwork feedback / label: record human judgements.

feedback  rate an answer run 1-5 (feeds the weight learner).
label     attach a human label to a chunk (entity labels feed lexicon promotion).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from groundwork.cli.context import DEFAULT_DB, open_engine
from groundwork.cli.errors import err_invalid_rating, err_unknown_run
from groundwork.db.models import Label
from groundwork.errors import UnknownRun

console = Console()


def feedback_cmd(
    run_id: Annotated[str, typer.Argument(help="Run id printed by 'groundwork ask'.")],
    rating: Annotated[int, typer.Argument(help="Rating from 1 (useless) to 5 (excellent).")],
    comment: Annotated[
        str | None, typer.Option("--comment", "-c", help="Free-text comment.")
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Rate an answer."""
    if not 1 <= rating <= 5:
        console.print(err_invalid_rating(rating))
        raise typer.Exit(1)

    engine = open_engine(db)
    try:
        engine.record_feedback(run_id, rating, comment)
    except UnknownRun as exc:
        console.print(err_unknown_run(run_id))
        raise typer.Exit(1) from exc
    finally:
        engine.close()
    console.print(f"[green]✓[/] Feedback recorded for run {run_id} (rating {rating})")


def label_cmd(
    chunk_id: Annotated[str, typer.Argument(help="Chunk id (see 'groundwork search').")],
    label_type: Annotated[str, typer.Argument(help="Label type, e.g. 'entity'.")],
    value: Annotated[str, typer.Argument(help="Label value.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Attach a human label to a chunk."""
    engine = open_engine(db)
    try:
        if engine.repo.get_chunk(chunk_id) is None:
            console.print(
                f"[red]Error:[/] Chunk '{chunk_id}' not found.\n"
                "  Run:  groundwork search QUERY  to find chunk ids."
            )
            raise typer.Exit(1)
        engine.repo.add_label(Label(chunk_id=chunk_id, label_type=label_type, label_value=value))
    finally:
        engine.close()
    console.print(f"[green]✓[/] Labelled {chunk_id}: {label_type}={value}")
