"""Lexicon maintenance: harvesting, promotion from human labels, embedding.

The lexicon is the vocabulary that query expansion trusts. Terms only ever
gain frequency; nothing here deletes a term.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from groundwork.db.repository import Repository
from groundwork.rag.embeddings import EmbeddingProvider

if TYPE_CHECKING:
    from groundwork.graph.reasoning import Evidence

logger = logging.getLogger(__name__)


def harvest_entities(repo: Repository, evidence: Iterable[Evidence]) -> int:
    """Upsert the canonical form of every annotated entity into the lexicon.

    Frequencies are summed per term before writing, so one batch costs one
    statement per distinct term. Returns the number of distinct terms.
    """
    terms: dict[str, dict] = {}
    for ev in evidence:
        for ent in ev.entities:
            canonical = ent.get("canonical")
            if not canonical:
                continue
            meta = terms.setdefault(
                canonical, {"type": ent.get("type") or "other", "sources": set(), "freq": 0}
            )
            meta["sources"].add(ev.chunk.source or "unknown")
            meta["freq"] += 1
    for term, meta in terms.items():
        repo.upsert_lexicon_term(term, meta["type"], meta["freq"], meta["sources"])
    if terms:
        logger.debug("stage=lexicon harvested=%d", len(terms))
    return len(terms)


def promote_labels(repo: Repository, min_freq: int = 2) -> list[str]:
    """Promote human ``entity`` labels seen at least *min_freq* times. Returns new terms."""
    promoted: list[str] = []
    for term, freq in repo.entity_label_candidates(min_freq):
        repo.upsert_lexicon_term(term, "other", freq, ["human_label"])
        promoted.append(term)
    return promoted


def embed_terms(repo: Repository, embedder: EmbeddingProvider, limit: int = 50) -> int:
    """Embed up to *limit* lexicon terms that have no embedding yet. Returns the count."""
    terms = repo.terms_missing_embedding(limit)
    if not terms:
        return 0
    for term, vector in zip(terms, embedder.embed(terms)):
        repo.set_term_embedding(term, vector)
    return len(terms)
