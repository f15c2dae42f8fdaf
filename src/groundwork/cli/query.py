"""groundwork search / ask: query the knowledge base.

search  hybrid (or --lexical BM25-only) retrieval, printed as a table.
ask     plan → execute → synthesize; prints the answer and its run id.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from groundwork.cli.context import DEFAULT_DB, open_engine
from groundwork.cli.errors import (
    err_graph_file,
    err_planner_failed,
    err_rag_failed,
    warn_no_generator,
)
from groundwork.errors import PlannerFailed, RagFailed

console = Console()


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
    k: Annotated[int | None, typer.Option("--k", "-k", help="Number of results.")] = None,
    lexical: Annotated[
        bool, typer.Option("--lexical", help="BM25 only: no expansion, embeddings or reranking.")
    ] = False,
    no_rerank: Annotated[bool, typer.Option("--no-rerank", help="Skip the reranker.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Search the knowledge base."""
    engine = open_engine(db, verbose=verbose)
    try:
        top_k = k or engine.config.retrieval.top_k
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Score", justify="right")
        table.add_column("Path")
        table.add_column("Location", style="dim")
        table.add_column("Text")

        if lexical:
            hits = engine.retriever.lexical_search(query, top_k)
            for i, (chunk, score) in enumerate(hits, start=1):
                table.add_row(str(i), f"{score:.3f}", chunk.path, chunk.location, _preview(chunk.text))
        else:
            hits = engine.search(query, top_k, rerank=not no_rerank)
            for i, hit in enumerate(hits, start=1):
                table.add_row(
                    str(i), f"{hit.score:.3f}", hit.chunk.path, hit.chunk.location, _preview(hit.chunk.text)
                )
    finally:
        engine.close()

    if not hits:
        console.print("[yellow]No results.[/]")
        return
    console.print(table)


def ask_cmd(
    query: Annotated[str, typer.Argument(help="Question to answer.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .groundwork.db.")] = DEFAULT_DB,
    graph: Annotated[
        Path | None,
        typer.Option("--graph", help="JSON task graph to run instead of the planner's."),
    ] = None,
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the structured answer as JSON.")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Answer a question from the knowledge base."""
    raw_graph = None
    if graph is not None:
        try:
            raw_graph = json.loads(graph.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            console.print(err_graph_file(str(graph), str(exc)))
            raise typer.Exit(1) from exc

    engine = open_engine(db, verbose=verbose)
    try:
        if engine.generator is None and not as_json:
            console.print(warn_no_generator(engine.config.generation.model))
        answer = engine.answer(query, raw_graph)
    except PlannerFailed as exc:
        console.print(err_planner_failed(str(exc)))
        raise typer.Exit(1) from exc
    except RagFailed as exc:
        console.print(err_rag_failed(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        engine.close()

    if as_json:
        payload = {
            "run_id": answer.run_id,
            "intents": answer.intents,
            "latency_ms": answer.latency_ms,
            "text": answer.text,
            "result": answer.result.to_dict(),
        }
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    console.print(Markdown(answer.text))
    status = "[green]valid[/]" if answer.result.valid else "[yellow]unverified[/]"
    issues = f"  issues: {', '.join(answer.result.issues)}" if answer.result.issues else ""
    console.print(
        f"\n[dim]run {answer.run_id}  intents: {', '.join(answer.intents)}  "
        f"{answer.latency_ms} ms[/]  {status}{issues}"
    )


def _preview(text: str, limit: int = 100) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 1] + "…"
