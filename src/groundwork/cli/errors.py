"""Groundwork rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from groundwork.cli.errors import err_no_db
    console.print(err_no_db(".groundwork.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".groundwork.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  groundwork ingest PATH  to create it."
    )


def err_config(message: str) -> str:
    """groundwork.yaml or the global config failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix groundwork.yaml (or ~/.groundwork/config.yaml) and retry."
    )


def err_path_not_found(path: str) -> str:
    """Ingest path does not exist."""
    return (
        f"[red]Error:[/] Path not found: '{path}'\n"
        "  Pass an existing file or directory."
    )


def err_unknown_run(run_id: str) -> str:
    """Run id not in the store."""
    return (
        f"[red]Error:[/] Run '{run_id}' not found.\n"
        "  Run ids are printed by  groundwork ask ."
    )


def err_invalid_rating(rating: int) -> str:
    """Feedback rating out of range."""
    return (
        f"[red]Error:[/] Rating must be between 1 and 5, got {rating}.\n"
        "  Example:  groundwork feedback RUN_ID 4"
    )


def err_planner_failed(message: str) -> str:
    """The task graph could not be built or repaired."""
    return (
        f"[red]Error:[/] Could not plan the query: {message}\n"
        "  Rephrase the query, or check the --graph file if you supplied one."
    )


def err_rag_failed(message: str) -> str:
    """Task-graph execution failed."""
    return (
        f"[red]Error:[/] Answering failed: {message}\n"
        "  Re-run with --verbose to see which stage failed."
    )


def err_graph_file(path: str, reason: str) -> str:
    """--graph file unreadable or not JSON."""
    return (
        f"[red]Error:[/] Cannot read task graph from '{path}': {reason}\n"
        '  The file must hold a JSON object: {"tasks": [...]}'
    )


def warn_no_generator(model: str) -> str:
    """Running without text generation: every stage uses its local fallback."""
    return (
        f"[yellow]Warning:[/] No API key for '{model}'; running without AI.\n"
        "  Planning, reranking and synthesis use their local fallbacks."
    )
