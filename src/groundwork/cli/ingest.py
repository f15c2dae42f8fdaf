"""groundwork ingest: chunk plain-text files into the store.

A file argument is ingested as one document, its display path as given. A
directory argument is scanned recursively through LocalDirectorySource;
display paths are relative to that directory. Re-ingesting a path replaces
its chunks unless --append is given.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from groundwork.cli.context import DEFAULT_DB, open_engine
from groundwork.cli.errors import err_path_not_found
from groundwork.engine import Engine
from groundwork.ingest.sources import LocalDirectorySource

console = Console()


def ingest_cmd(
    paths: Annotated[
        list[Path],
        typer.Argument(help="Files or directories to ingest."),
    ],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .groundwork.db (created if missing)."),
    ] = DEFAULT_DB,
    append: Annotated[
        bool,
        typer.Option("--append", help="Add chunks without replacing existing ones for the path."),
    ] = False,
    source: Annotated[
        str | None,
        typer.Option("--source", help="Source label stored on each chunk."),
    ] = None,
    filter: Annotated[
        str | None,
        typer.Option("--filter", help="Glob on the relative path when ingesting a directory."),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Ingest files or directories into the knowledge base."""
    missing = [p for p in paths if not p.exists()]
    if missing:
        console.print(err_path_not_found(str(missing[0])))
        raise typer.Exit(1)

    engine = open_engine(db, must_exist=False, verbose=verbose)
    total = 0
    try:
        for path in paths:
            if path.is_dir():
                total += _ingest_directory(engine, path, filter, source, append)
            else:
                total += _ingest_file(engine, path, source, append)
    finally:
        engine.close()

    console.print(f"\n[green]✓[/] {total} chunks stored in {db}")


def _ingest_file(engine: Engine, path: Path, source: str | None, append: bool) -> int:
    text = path.read_text(encoding="utf-8", errors="replace")
    n = engine.ingest(str(path), path.as_posix(), text, source=source, append=append)
    console.print(f"  [green]✓[/] {path}  [dim]{n} chunks[/]")
    return n


def _ingest_directory(
    engine: Engine, root: Path, filter: str | None, source: str | None, append: bool
) -> int:
    src = LocalDirectorySource(root)
    candidates = src.list_candidates(filter)
    if not candidates:
        console.print(f"  [yellow]No matching files under {root}[/]")
        return 0

    total = 0
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"Ingesting {root}", total=len(candidates))
        for cand in candidates:
            text = src.fetch_document(cand.id)
            total += engine.ingest(cand.id, cand.path, text, source=source, append=append)
            progress.advance(task)
    console.print(f"  [green]✓[/] {root}  [dim]{len(candidates)} files, {total} chunks[/]")
    return total
