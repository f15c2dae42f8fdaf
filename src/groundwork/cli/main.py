"""Groundwork CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from groundwork.cli.evaluate import evaluate_app
from groundwork.cli.export import export_cmd
from groundwork.cli.feedback import feedback_cmd, label_cmd
from groundwork.cli.ingest import ingest_cmd
from groundwork.cli.lexicon import backfill_cmd, lexicon_app
from groundwork.cli.query import ask_cmd, search_cmd
from groundwork.cli.status import status_cmd
from groundwork.cli.weights import weights_app


def _installed_version() -> str:
    try:
        return importlib.metadata.version("groundwork")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"groundwork {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="groundwork",
    help=(
        "Groundwork: hybrid retrieval and grounded answers over your documents.\n\n"
        "  groundwork ingest  Chunk files into the knowledge base.\n"
        "  groundwork ask     Plan, retrieve, reason and answer with sources."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Groundwork: hybrid retrieval and grounded answers over your documents."""


app.command("ingest")(ingest_cmd)
app.command("search")(search_cmd)
app.command("ask")(ask_cmd)
app.command("feedback")(feedback_cmd)
app.command("label")(label_cmd)
app.command("export")(export_cmd)
app.command("backfill")(backfill_cmd)
app.command("status")(status_cmd)
app.add_typer(weights_app, name="weights")
app.add_typer(lexicon_app, name="lexicon")
app.add_typer(evaluate_app, name="evaluate")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Groundwork version."""
    typer.echo(f"groundwork {_installed_version()}")


if __name__ == "__main__":
    app()
