"""Base annotator interface.

An annotator attaches one payload per chunk (labels, entities, dates). Local
annotators compute it in-process and never fail. Remote annotators describe
one batched text-generation call: ``build_prompt()`` renders the request and
``parse_response()`` maps the returned JSON items back to batch positions.

Cache rows are keyed by ``key`` (``f"{name}_v{version}"``); changing the
payload shape means bumping ``version``, never rewriting old rows.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from groundwork.db.models import Chunk

_PROMPT_PAYLOAD_CHARS = 16_000


class Annotator(ABC):
    """Abstract base for all annotators."""

    name: str = ""
    version: int = 1
    remote: bool = False
    # Remote annotators with full coverage fail when any chunk is left unlabelled.
    full_coverage: bool = False

    @property
    def key(self) -> str:
        return f"{self.name}_v{self.version}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r})"


class LocalAnnotator(Annotator):
    """Annotator computed in-process. No cache, no external call."""

    @abstractmethod
    def annotate_local(self, chunk: Chunk) -> object:
        """Return the payload for *chunk*."""


class RemoteAnnotator(Annotator):
    """Annotator backed by one batched text-generation call per uncached batch.

    Args:
        payload_chars: Characters of chunk text sent per chunk.
        max_tokens: Output token budget for the call.
    """

    remote = True
    instructions: str = ""

    def __init__(self, payload_chars: int = 500, max_tokens: int = 1600) -> None:
        self.payload_chars = payload_chars
        self.max_tokens = max_tokens

    def build_prompt(self, chunks: list[Chunk]) -> str:
        """Render instructions followed by the JSON batch payload."""
        payload = [self.payload_item(i, c) for i, c in enumerate(chunks)]
        body = json.dumps(payload, ensure_ascii=False)[:_PROMPT_PAYLOAD_CHARS]
        return f"{self.instructions}\n{body}"

    def payload_item(self, index: int, chunk: Chunk) -> dict:
        return {"i": index, "text": chunk.text[: self.payload_chars]}

    @abstractmethod
    def parse_response(self, items: list, n: int) -> dict[int, object]:
        """Map parsed response *items* to ``{batch_index: payload}``.

        Indices outside ``range(n)`` and malformed items are dropped.
        """
