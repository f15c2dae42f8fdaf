"""groundwork lexicon / backfill: vocabulary and embedding maintenance."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from groundwork.cli.context import DEFAULT_DB, open_engine
from groundwork.ingest.processor import backfill_embeddings
from groundwork.learning.lexicon import embed_terms, promote_labels

console = Console()

lexicon_app = typer.Typer(help="Inspect and maintain the lexicon.", no_args_is_help=True)


@lexicon_app.command("list")
def list_cmd(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum terms shown.")] = 50,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """List lexicon terms by frequency."""
    engine = open_engine(db)
    try:
        terms = engine.repo.list_lexicon(limit)
    finally:
        engine.close()
    if not terms:
        console.print("[dim]Lexicon is empty.[/]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Term")
    table.add_column("Type", style="dim")
    table.add_column("Freq", justify="right")
    table.add_column("Sources", style="dim")
    table.add_column("Emb", justify="center")
    for t in terms:
        table.add_row(
            t.term,
            t.type,
            str(t.frequency),
            ", ".join(t.sources),
            "[green]✓[/]" if t.embedding else "",
        )
    console.print(table)


@lexicon_app.command("promote")
def promote_cmd(
    min_freq: Annotated[
        int, typer.Option("--min-freq", help="Minimum label count for promotion.")
    ] = 2,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Promote frequent human entity labels into the lexicon."""
    engine = open_engine(db)
    try:
        promoted = promote_labels(engine.repo, min_freq)
    finally:
        engine.close()
    console.print(f"[green]✓[/] Promoted {len(promoted)} term(s)")
    for term in promoted:
        console.print(f"  {term}")


@lexicon_app.command("embed")
def embed_cmd(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum terms embedded.")] = 50,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Embed lexicon terms that have no embedding yet."""
    engine = open_engine(db)
    try:
        n = embed_terms(engine.repo, engine.embedder, limit)
    finally:
        engine.close()
    console.print(f"[green]✓[/] Embedded {n} term(s)")


def backfill_cmd(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum chunks embedded.")] = 500,
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Embed stored chunks that have no embedding yet."""
    engine = open_engine(db)
    try:
        n = backfill_embeddings(engine.repo, engine.embedder, limit)
    finally:
        engine.close()
    console.print(f"[green]✓[/] Embedded {n} chunk(s)")
