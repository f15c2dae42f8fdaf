"""Claim / prohibition / permission labelling via the text-generation call."""

from __future__ import annotations

from groundwork.annotate.base import RemoteAnnotator

CLAIM_LABELS: frozenset[str] = frozenset(["claim_statement", "prohibition", "permission"])


class ClaimsAnnotator(RemoteAnnotator):
    """Labels each chunk with a subset of CLAIM_LABELS. Full coverage required.

    Response contract: ``[{"i": index, "labels": [...]}]``. Unknown labels are
    dropped; an empty list is a valid annotation.
    """

    name = "claims"
    full_coverage = True
    instructions = (
        'Label each text with a subset of ["claim_statement","prohibition","permission"]. '
        'Reply with a JSON array: [{"i":index,"labels":[...]}]. Do not invent new labels.'
    )

    def parse_response(self, items: list, n: int) -> dict[int, object]:
        out: dict[int, object] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            index = item.get("i")
            labels = item.get("labels")
            if not isinstance(index, int) or not 0 <= index < n:
                continue
            if not isinstance(labels, list):
                continue
            kept: list[str] = []
            for label in labels:
                if label in CLAIM_LABELS and label not in kept:
                    kept.append(label)
            out[index] = kept
        return out
