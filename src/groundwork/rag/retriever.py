"""Hybrid retriever: BM25 candidates rescored with embedding similarity.

Pipeline for search(query, k, weights):
  1. Expand the query; BM25 runs over ``query + expansions``.
  2. Take the top lexical candidates (80 by default).
  3. Embed the raw query once; sim = cosine(query, chunk) or 0 without an
     embedding.
  4. bm25_norm = min-max normalization within the candidate set (0.5 when
     every candidate has the same score).
  5. boost = 0.05 per expansion term contained in the lower-cased chunk text.
  6. score = w_sim * sim + w_bm25 * bm25_norm + boost; stable sort so equal
     scores keep BM25 order.
  7. Optional rerank of the top candidates, then cut to k.

Without a reranker the ranking is deterministic for fixed weights and
embeddings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from groundwork.db.models import Chunk, RetrievalWeights
from groundwork.db.repository import Repository
from groundwork.rag.bm25 import LexicalIndex
from groundwork.rag.embeddings import EmbeddingProvider, cosine
from groundwork.rag.expansion import QueryExpander

if TYPE_CHECKING:
    from groundwork.rag.reranker import Reranker


@dataclass
class ScoredChunk:
    """A retrieved chunk with every score component that produced its rank.

    Attributes:
        chunk: The Chunk row from the store.
        score: Final combined score (higher = more relevant).
        sim: Cosine similarity between query and chunk embeddings.
        bm25_norm: Min-max normalized BM25 score within the candidate set.
        boost: Expansion-term boost.
        llm_rel: Reranker relevance grade 0-5 (None when not reranked).
        why: Reranker rationale, when requested.
    """

    chunk: Chunk
    score: float
    sim: float = 0.0
    bm25_norm: float = 0.0
    boost: float = 0.0
    llm_rel: float | None = None
    why: str | None = None

    @property
    def id(self) -> str:
        return self.chunk.id

    def to_payload(self) -> dict:
        """Serializable form stored in retrieval artifacts."""
        return {
            "id": self.chunk.id,
            "path": self.chunk.path,
            "location": self.chunk.location,
            "score": self.score,
            "sim": self.sim,
            "bm25_norm": self.bm25_norm,
            "boost": self.boost,
            "llm_rel": self.llm_rel,
            "why": self.why,
        }


class HybridRetriever:
    """Combines the lexical index, embeddings, and expansion into one ranking."""

    def __init__(
        self,
        repo: Repository,
        index: LexicalIndex,
        embedder: EmbeddingProvider,
        expander: QueryExpander,
        reranker: Reranker | None = None,
        lexical_candidates: int = 80,
        expansion_boost: float = 0.05,
    ) -> None:
        self.repo = repo
        self.index = index
        self.embedder = embedder
        self.expander = expander
        self.reranker = reranker
        self.lexical_candidates = lexical_candidates
        self.expansion_boost = expansion_boost

    def search(
        self,
        query: str,
        k: int,
        weights: RetrievalWeights,
        rerank: bool = True,
        explain: bool = False,
    ) -> list[ScoredChunk]:
        """Return at most *k* chunks for *query*, best-first."""
        expansions = self.expander.expand(query)
        expanded_query = " ".join([query, *expansions])
        lexical = self.index.search(expanded_query, self.lexical_candidates)
        if not lexical:
            return []

        chunks = self.repo.get_chunks([cid for cid, _ in lexical])
        # Chunks evicted from the store since the index was built are skipped.
        lexical = [(cid, s) for cid, s in lexical if cid in chunks]
        if not lexical:
            return []

        query_embedding = self.embedder.embed_one(query)
        raw_scores = [s for _, s in lexical]
        lo, hi = min(raw_scores), max(raw_scores)
        lowered_terms = [t.lower() for t in expansions]

        scored: list[ScoredChunk] = []
        for cid, bm25 in lexical:
            chunk = chunks[cid]
            sim = cosine(query_embedding, chunk.embedding) if chunk.embedding else 0.0
            bm25_norm = 0.5 if hi == lo else (bm25 - lo) / (hi - lo)
            text = chunk.text.lower()
            boost = self.expansion_boost * sum(1 for t in lowered_terms if t in text)
            score = weights.w_sim * sim + weights.w_bm25 * bm25_norm + boost
            scored.append(
                ScoredChunk(chunk=chunk, score=score, sim=sim, bm25_norm=bm25_norm, boost=boost)
            )
        scored.sort(key=lambda s: s.score, reverse=True)

        if rerank and self.reranker is not None:
            reranked = self.reranker.rerank(query, scored, weights, explain=explain)
            if reranked is not None:
                scored = reranked
        return scored[:k]

    def lexical_search(self, query: str, k: int) -> list[tuple[Chunk, float]]:
        """Plain BM25 over the raw query. Returns ``[(chunk, bm25_score)]``."""
        hits = self.index.search(query, k)
        chunks = self.repo.get_chunks([cid for cid, _ in hits])
        return [(chunks[cid], s) for cid, s in hits if cid in chunks]
