"""Entity extraction via the text-generation call.

Each chunk is sent with a short list of local candidates (task codes and
capitalised words) that the model classifies. Canonical forms default to the
lower-cased value.
"""

from __future__ import annotations

import re

from groundwork.annotate.base import RemoteAnnotator
from groundwork.db.models import Chunk

ENTITY_TYPES: frozenset[str] = frozenset(["product", "organization", "task", "person", "other"])

_TASK_RE = re.compile(r"\bTASK[- ]?[0-9]{2,8}\b")
_CAPITALISED_RE = re.compile(r"\b[A-Z][A-Za-zÀ-ÖØ-öø-ÿ0-9]{2,}\b")
_MAX_CAPITALISED = 25
_MAX_CANDIDATES = 40


def extract_candidates(text: str) -> list[str]:
    """Return candidate entity strings from *text*, task codes first."""
    seen: list[str] = []
    for value in _TASK_RE.findall(text) + _CAPITALISED_RE.findall(text)[:_MAX_CAPITALISED]:
        if value not in seen:
            seen.append(value)
    return seen[:_MAX_CANDIDATES]


class EntitiesAnnotator(RemoteAnnotator):
    """Classifies entity candidates per chunk. Full coverage required.

    Response contract:
    ``[{"index": i, "entities": [{"value", "type", "canonical"}]}]``.
    """

    name = "entities"
    full_coverage = True
    instructions = (
        "Classify the candidate entities of each block.\n"
        'Return a JSON array: [{"index":i,"entities":[{"value":"...",'
        '"type":"product|organization|task|person|other","canonical":"..."}]}]\n'
        "Do not invent entities that are not present. Use 'task' for codes like TASK-123. "
        "Use a simplified lower-case canonical form."
    )

    def __init__(self, payload_chars: int = 800, max_tokens: int = 1800) -> None:
        super().__init__(payload_chars=payload_chars, max_tokens=max_tokens)

    def payload_item(self, index: int, chunk: Chunk) -> dict:
        return {
            "i": index,
            "text": chunk.text[: self.payload_chars],
            "cand": extract_candidates(chunk.text),
        }

    def parse_response(self, items: list, n: int) -> dict[int, object]:
        out: dict[int, object] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            index = item.get("index", item.get("i"))
            entities = item.get("entities")
            if not isinstance(index, int) or not 0 <= index < n:
                continue
            if not isinstance(entities, list):
                continue
            out[index] = [e for e in (_clean_entity(raw) for raw in entities) if e]
        return out


def _clean_entity(raw: object) -> dict[str, str] | None:
    if not isinstance(raw, dict):
        return None
    value = raw.get("value")
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    etype = raw.get("type") if raw.get("type") in ENTITY_TYPES else "other"
    canonical = raw.get("canonical")
    if not isinstance(canonical, str) or not canonical.strip():
        canonical = value.lower()
    return {"value": value, "type": etype, "canonical": canonical.strip()}
