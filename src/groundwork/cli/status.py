"""groundwork status: knowledge base and learning overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

from groundwork.cli.context import DEFAULT_DB, open_engine

console = Console()


def status_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
) -> None:
    """Show store counts, models and current weights."""
    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  groundwork ingest PATH",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    engine = open_engine(db)
    cfg = engine.config
    try:
        repo = engine.repo
        chunks = repo.count_chunks()
        missing = len(repo.chunks_missing_embedding(limit=100_000))
        runs = repo.count_runs()
        feedback = repo.count_feedback()
        weights = repo.get_weights()
        generator = engine.generator is not None
    finally:
        engine.close()

    size_mb = db.stat().st_size / (1024 * 1024)
    kb_lines = [
        f"Database:  {db} ({size_mb:.1f} MB)",
        f"Chunks:    [bold]{chunks:,}[/]  [dim]({missing:,} without embedding)[/]",
        f"Runs:      [bold]{runs:,}[/]  |  Feedback: [bold]{feedback:,}[/]",
    ]
    console.print(Panel("\n".join(kb_lines), title="[bold]Knowledge Base[/]", expand=False))

    ai = "[green]enabled[/]" if generator else "[yellow]disabled (no API key)[/]"
    model_lines = [
        f"Generation: {cfg.generation.model}  {ai}",
        f"Embedding:  {cfg.embedding.model or '(hash fallback)'}",
        f"Weights:    sim {weights.w_sim:.3f}  bm25 {weights.w_bm25:.3f}  llm {weights.w_llm:.3f}",
    ]
    console.print(Panel("\n".join(model_lines), title="[bold]Models[/]", expand=False))
