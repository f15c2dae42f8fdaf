"""Query expansion: heuristic seed groups + lexicon-filtered model suggestions.

expand(raw) merges two sources, heuristic first:
  1. Seed groups: when any member of a synonym cluster occurs in the query,
     every other member becomes a candidate.
  2. Suggestions: one text-generation call proposes related terms; only the
     ones already present in the lexicon are accepted.

Terms contained (case-insensitively) in the raw query are never returned.
A failing suggestion call degrades to the heuristic result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from groundwork.db.repository import Repository
from groundwork.rag.jsonparse import extract_json_array
from groundwork.rag.llm_client import TextGenerator

logger = logging.getLogger(__name__)

_SUGGEST_PROMPT = """\
You help search the documents of a marketing and project-management agency.
Suggest up to {limit} key terms, synonyms, or closely related concepts a
practitioner would use to broaden the search for this query.
Query: "{query}"
Reply with a plain JSON array of strings. No explanations.

Example:
Query: "budget problems project X"
Reply: ["extra costs", "unexpected expenses", "budget overrun", "cost analysis"]"""


class QueryExpander:
    """Expands raw queries with related terms.

    Args:
        repo: Repository used to filter suggestions against the lexicon.
        generator: Text generator for suggestions; None disables them.
        model: Model passed to the generator.
        seed_groups: Synonym clusters for the heuristic source.
        suggestion_limit: Maximum suggestions considered per query.
    """

    def __init__(
        self,
        repo: Repository,
        generator: TextGenerator | None = None,
        model: str = "",
        seed_groups: Sequence[Sequence[str]] = (),
        suggestion_limit: int = 6,
    ) -> None:
        self.repo = repo
        self.generator = generator
        self.model = model
        self.seed_groups = [[t.lower() for t in g] for g in seed_groups]
        self.suggestion_limit = suggestion_limit

    def expand(self, raw: str) -> list[str]:
        """Return expansion terms for *raw*, heuristic terms first, deduplicated."""
        lowered = raw.lower()
        merged: list[str] = []
        for term in self._heuristic(lowered) + self._suggest(raw):
            if term and term not in merged and term not in lowered:
                merged.append(term)
        return merged

    # ------------------------------------------------------------------

    def _heuristic(self, lowered: str) -> list[str]:
        terms: list[str] = []
        for group in self.seed_groups:
            if any(member in lowered for member in group):
                terms.extend(group)
        return terms

    def _suggest(self, raw: str) -> list[str]:
        if self.generator is None or self.suggestion_limit <= 0:
            return []
        prompt = _SUGGEST_PROMPT.format(limit=self.suggestion_limit, query=raw)
        try:
            out = self.generator.generate(self.model, prompt, 400, 0.0)
        except Exception as exc:
            logger.warning("stage=expand query=%r suggestion call failed: %s", raw, exc)
            return []
        items = extract_json_array(out)
        if items is None:
            logger.warning("stage=expand query=%r unparseable suggestions", raw)
            return []
        candidates: list[str] = []
        for item in items:
            if isinstance(item, str) and item.strip():
                term = item.strip().lower()
                if term not in candidates:
                    candidates.append(term)
        candidates = candidates[: self.suggestion_limit]
        known = self.repo.existing_terms(candidates)
        return [c for c in candidates if c in known]
