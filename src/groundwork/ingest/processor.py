"""Ingestion processor: raw document text → content-addressed chunks.

Two splitting modes, chosen per document:
  sheet      at least one "\\nSheet:" marker and a tab character; one chunk
             per non-empty line, "Sheet:" header lines skipped
  paragraph  blank-line separated blocks; blocks over the ceiling (1400
             chars) are cut into fixed segments (1000 chars)

Each unit is located in the original text by searching forward from a
cursor for its leading token; when not found the cursor itself is used.
Offsets are UTF-8 byte positions and chunk ids are
``sha1(f"{origin_id}:{byte_start}:{byte_end}")``, so re-ingesting identical
content replaces rows instead of duplicating them.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass

from groundwork.config import IngestCfg
from groundwork.db.models import Chunk
from groundwork.db.repository import Repository
from groundwork.rag.bm25 import LexicalIndex
from groundwork.rag.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

_BLANK_LINES_RE = re.compile(r"\n{2,}")
_SHEET_MARKER_RE = re.compile(r"\nSheet:")
_SHEET_HEADER_RE = re.compile(r"^Sheet:", re.IGNORECASE)
_REGEX_META_RE = re.compile(r"[.*+?^${}()|\[\]\\]")
_PROBE_CHARS = 40


@dataclass
class TextUnit:
    text: str
    location: str
    type: str


def chunk_id(origin_id: str, byte_start: int, byte_end: int) -> str:
    return hashlib.sha1(f"{origin_id}:{byte_start}:{byte_end}".encode("utf-8")).hexdigest()


def is_sheet(text: str) -> bool:
    return bool(_SHEET_MARKER_RE.search(text)) and "\t" in text


def split_paragraphs(text: str, ceiling: int = 1_400, segment: int = 1_000) -> list[TextUnit]:
    units: list[TextUnit] = []
    for idx, para in enumerate(_BLANK_LINES_RE.split(text), start=1):
        trimmed = para.strip()
        if not trimmed:
            continue
        if len(trimmed) > ceiling:
            for seg_idx, start in enumerate(range(0, len(trimmed), segment), start=1):
                units.append(TextUnit(trimmed[start : start + segment], f"par {idx}.{seg_idx}", "doc_par"))
        else:
            units.append(TextUnit(trimmed, f"par {idx}", "doc_par"))
    return units


def split_sheet(text: str) -> list[TextUnit]:
    units: list[TextUnit] = []
    for idx, line in enumerate(text.split("\n"), start=1):
        trimmed = line.strip()
        if not trimmed or _SHEET_HEADER_RE.match(trimmed):
            continue
        units.append(TextUnit(trimmed, f"row {idx}", "sheet_row"))
    return units


def locate(raw: str, unit_text: str, cursor: int) -> int:
    """Return the character index of *unit_text* in *raw*, searching from *cursor*.

    The probe is the first whitespace token of the unit's first 40 characters
    with regex metacharacters removed. Not found → *cursor*.
    """
    cleaned = _REGEX_META_RE.sub("", unit_text[:_PROBE_CHARS])
    tokens = cleaned.split()
    if not tokens:
        return cursor
    idx = raw.find(tokens[0], cursor)
    return cursor if idx == -1 else idx


class IngestionProcessor:
    """Splits documents into chunks and upserts them.

    Args:
        repo: Repository receiving the chunks.
        embedder: When given, chunks are embedded at ingest time.
        index: When given, the lexical index is kept in sync.
        config: Chunking configuration.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingProvider | None = None,
        index: LexicalIndex | None = None,
        config: IngestCfg | None = None,
    ) -> None:
        self.repo = repo
        self.embedder = embedder
        self.index = index
        self.config = config or IngestCfg()

    def split(self, raw_text: str) -> list[TextUnit]:
        if is_sheet(raw_text):
            return split_sheet(raw_text)
        return split_paragraphs(
            raw_text, self.config.paragraph_ceiling, self.config.segment_size
        )

    def build_chunks(
        self, origin_id: str, display_path: str, raw_text: str, source: str
    ) -> list[Chunk]:
        """Split *raw_text* and compute offsets and ids. Never raises on content."""
        chunks: list[Chunk] = []
        cursor = 0
        for unit in self.split(raw_text):
            idx = locate(raw_text, unit.text, cursor)
            cursor = idx + len(unit.text)
            byte_start = len(raw_text[:idx].encode("utf-8"))
            byte_end = byte_start + len(unit.text.encode("utf-8"))
            chunks.append(
                Chunk(
                    id=chunk_id(origin_id, byte_start, byte_end),
                    text=unit.text,
                    origin_id=origin_id,
                    source=source,
                    type=unit.type,
                    path=display_path,
                    location=unit.location,
                    byte_start=byte_start,
                    byte_end=byte_end,
                )
            )
        return chunks

    def ingest(
        self,
        origin_id: str,
        display_path: str,
        raw_text: str,
        *,
        source: str | None = None,
        append: bool = False,
    ) -> int:
        """Chunk and upsert one document. Returns the number of chunks written.

        Unless *append* is set, every existing chunk for *display_path* is
        deleted first.
        """
        source = source or self.config.source
        if not append:
            removed = self.repo.delete_chunks_by_path(display_path)
            if self.index is not None:
                for cid in removed:
                    self.index.remove(cid)
            if removed:
                logger.info("stage=ingest path=%s purged=%d", display_path, len(removed))

        if not raw_text or not raw_text.strip():
            return 0

        chunks = self.build_chunks(origin_id, display_path, raw_text, source)
        if self.embedder is not None and chunks:
            vectors = self.embedder.embed([c.text for c in chunks])
            for chunk, vector in zip(chunks, vectors):
                chunk.embedding = vector

        written = self.repo.upsert_chunks(chunks)
        if self.index is not None:
            for chunk in chunks:
                self.index.add(chunk.id, chunk.text)
        logger.info("stage=ingest origin=%s path=%s chunks=%d", origin_id, display_path, written)
        return written


def backfill_embeddings(repo: Repository, embedder: EmbeddingProvider, limit: int = 500) -> int:
    """Embed up to *limit* stored chunks that have no embedding. Returns the count."""
    pending = repo.chunks_missing_embedding(limit)
    if not pending:
        return 0
    vectors = embedder.embed([c.text for c in pending])
    for chunk, vector in zip(pending, vectors):
        repo.set_chunk_embedding(chunk.id, vector)
    return len(pending)
