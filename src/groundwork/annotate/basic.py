"""Basic heuristic labels computed locally."""

from __future__ import annotations

import re

from groundwork.annotate.base import LocalAnnotator
from groundwork.db.models import Chunk

_ENTITY_REF_RE = re.compile(r"hypermix|rimos|prodotto|product|cliente|client|project|progetto|task")


class BasicAnnotator(LocalAnnotator):
    """Adds ``entity_ref`` when a chunk mentions a product, client, project or task."""

    name = "basic"

    def annotate_local(self, chunk: Chunk) -> list[str]:
        labels: list[str] = []
        if _ENTITY_REF_RE.search(chunk.text.lower()):
            labels.append("entity_ref")
        return labels
