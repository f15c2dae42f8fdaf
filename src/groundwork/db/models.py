"""Domain models for the groundwork persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Chunk:
    id: str
    text: str
    origin_id: str = ""
    source: str = "drive"
    type: str = "doc_par"
    path: str = ""
    location: str = ""
    byte_start: int = 0
    byte_end: int = 0
    embedding: list[float] | None = None
    updated_at: str | None = None


@dataclass
class LexiconTerm:
    term: str
    type: str = "other"
    frequency: int = 1
    sources: list[str] = field(default_factory=list)
    embedding: list[float] | None = None
    last_seen: str | None = None


@dataclass(frozen=True)
class RetrievalWeights:
    """Hybrid scoring weights. Instances are immutable; updates replace the row."""

    w_sim: float
    w_bm25: float
    w_llm: float
    updated_at: str | None = None

    def normalized(self) -> RetrievalWeights:
        """Return a copy whose three weights sum to 1.

        A degenerate all-zero triple is returned unchanged.
        """
        total = self.w_sim + self.w_bm25 + self.w_llm
        if total <= 0:
            return self
        return RetrievalWeights(
            w_sim=self.w_sim / total,
            w_bm25=self.w_bm25 / total,
            w_llm=self.w_llm / total,
            updated_at=self.updated_at,
        )


# Seed row. Relative proportions 0.5 : 0.45 : 0.2, stored normalized.
DEFAULT_WEIGHTS = RetrievalWeights(w_sim=0.5, w_bm25=0.45, w_llm=0.2).normalized()


@dataclass
class Run:
    id: str
    query: str
    intents: list[str] = field(default_factory=list)
    graph: dict = field(default_factory=dict)
    conclusions: list = field(default_factory=list)
    support_count: int = 0
    valid: bool = False
    latency_ms: int = 0
    created_at: str | None = None


@dataclass
class Artifact:
    run_id: str | None
    stage: str
    payload: object
    created_at: str | None = None


@dataclass
class Feedback:
    run_id: str
    rating: int
    comment: str | None = None
    created_at: str | None = None


@dataclass
class Label:
    chunk_id: str
    label_type: str
    label_value: str
    source: str = "human"
    created_at: str | None = None


@dataclass
class GroundTruth:
    query: str
    chunk_id: str
    relevant: bool
    id: int | None = None
    created_at: str | None = None
