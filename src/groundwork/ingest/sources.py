"""Ingestion sources: where raw document text comes from.

The core only needs plain text plus an id and a display path. Connectors for
document stores implement DocumentSource; LocalDirectorySource covers plain
text files on disk.
"""

from __future__ import annotations

import datetime
import fnmatch
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

DEFAULT_EXTENSIONS: tuple[str, ...] = (".txt", ".md", ".markdown", ".csv", ".tsv")


@dataclass
class Candidate:
    id: str
    path: str
    modified_at: str | None = None


class DocumentSource(Protocol):
    """Plain-text document provider."""

    def fetch_document(self, id: str) -> str: ...

    def list_candidates(self, filter: str | None = None) -> list[Candidate]: ...


class LocalDirectorySource:
    """Reads plain-text files under *root*.

    Candidate ids are paths relative to *root* (POSIX separators), which also
    serve as display paths. ``filter`` is a glob matched against that path.

    Args:
        root: Directory to scan recursively.
        extensions: File suffixes treated as plain text (case-insensitive).
    """

    def __init__(self, root: Path, extensions: tuple[str, ...] = DEFAULT_EXTENSIONS) -> None:
        self.root = Path(root)
        self.extensions = tuple(e.lower() for e in extensions)

    def list_candidates(self, filter: str | None = None) -> list[Candidate]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Source directory not found: {self.root}")
        out: list[Candidate] = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file() or path.suffix.lower() not in self.extensions:
                continue
            rel = path.relative_to(self.root).as_posix()
            if filter and not fnmatch.fnmatch(rel, filter):
                continue
            mtime = datetime.datetime.fromtimestamp(path.stat().st_mtime, tz=datetime.timezone.utc)
            out.append(Candidate(id=rel, path=rel, modified_at=mtime.isoformat(timespec="seconds")))
        return out

    def fetch_document(self, id: str) -> str:
        path = (self.root / id).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Document id escapes the source root: {id}")
        return path.read_text(encoding="utf-8", errors="replace")
