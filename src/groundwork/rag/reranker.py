"""Second-pass reranking through a relevance-judgement call.

The top candidates (at most 30) are sent in one text-generation call that
returns a 0-5 relevance grade per candidate. Scores are then recombined:

  score = 0.8 * w_sim * sim + 0.7 * w_bm25 * bm25_norm + w_llm * rel / 5 + boost

Any call or parse failure returns None and the caller keeps the hybrid order.
Judgements are cached per (query, sorted candidate ids) in a bounded LRU.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import replace

from groundwork.db.models import RetrievalWeights
from groundwork.rag.jsonparse import extract_json_array
from groundwork.rag.llm_client import TextGenerator
from groundwork.rag.retriever import ScoredChunk

logger = logging.getLogger(__name__)

_SNIPPET_CHARS = 350
_PAYLOAD_CHARS = 16_000

_PROMPT = """\
Reranking.
Query: "{query}"
Grade the relevance of each passage to the query with an integer from 0 to 5.
Reply ONLY with a JSON array: [{{"i":index,"rel":0-5}}]"""

_PROMPT_EXPLAIN = """\
Reranking with explanations.
Query: "{query}"
For each passage assign rel (0-5) and a short reason (under 15 words).
Reply ONLY with a JSON array: [{{"i":index,"rel":0-5,"why":"..."}}]"""

Judgements = dict[str, tuple[int, str | None]]


class LRUCache:
    """Thread-safe mapping that evicts the least recently used entry past *maxsize*."""

    def __init__(self, maxsize: int = 256) -> None:
        self.maxsize = max(0, maxsize)
        self._data: OrderedDict = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, key: object) -> object | None:
        with self._lock:
            if key not in self._data:
                return None
            self._data.move_to_end(key)
            return self._data[key]

    def put(self, key: object, value: object) -> None:
        if self.maxsize == 0:
            return
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)


class Reranker:
    """Relevance-judgement reranker over hybrid candidates.

    Args:
        generator: Text generator used for the judgement call.
        model: Model passed to the generator.
        max_candidates: Number of top candidates sent for judgement.
        cache_size: Maximum cached judgement sets.
    """

    def __init__(
        self,
        generator: TextGenerator,
        model: str,
        max_candidates: int = 30,
        cache_size: int = 256,
    ) -> None:
        self.generator = generator
        self.model = model
        self.max_candidates = max_candidates
        self._cache = LRUCache(cache_size)

    def judge(
        self, query: str, candidates: list[ScoredChunk], explain: bool = False
    ) -> Judgements | None:
        """Return ``{chunk_id: (rel, why)}`` for *candidates*, or None on failure.

        Candidates the response omits get rel 0.
        """
        if not candidates:
            return {}
        key = (query, tuple(sorted(c.id for c in candidates)), explain)
        cached = self._cache.get(key)
        if cached is not None:
            return cached  # type: ignore[return-value]

        payload = [
            {"i": i, "id": c.id, "text": c.chunk.text[:_SNIPPET_CHARS]}
            for i, c in enumerate(candidates)
        ]
        template = _PROMPT_EXPLAIN if explain else _PROMPT
        prompt = (
            template.format(query=query)
            + "\n"
            + json.dumps(payload, ensure_ascii=False)[:_PAYLOAD_CHARS]
        )
        try:
            raw = self.generator.generate(self.model, prompt, 1400, 0.0)
        except Exception as exc:
            logger.warning(
                "stage=rerank query=%r candidates=%d call failed: %s",
                query,
                len(candidates),
                exc,
            )
            return None

        items = extract_json_array(raw)
        if items is None:
            logger.warning(
                "stage=rerank query=%r candidates=%d unparseable response",
                query,
                len(candidates),
            )
            return None

        by_index: dict[int, dict] = {}
        for item in items:
            if isinstance(item, dict) and isinstance(item.get("i"), int):
                by_index[item["i"]] = item

        judgements: Judgements = {}
        for i, c in enumerate(candidates):
            item = by_index.get(i, {})
            judgements[c.id] = (_clamp_rel(item.get("rel")), item.get("why"))
        self._cache.put(key, judgements)
        return judgements

    def rerank(
        self,
        query: str,
        candidates: list[ScoredChunk],
        weights: RetrievalWeights,
        explain: bool = False,
    ) -> list[ScoredChunk] | None:
        """Rescore the top candidates and return them re-sorted, or None on failure.

        Candidates beyond ``max_candidates`` follow in their original order.
        """
        subset = candidates[: self.max_candidates]
        judgements = self.judge(query, subset, explain=explain)
        if judgements is None:
            return None

        rescored: list[ScoredChunk] = []
        for c in subset:
            rel, why = judgements.get(c.id, (0, None))
            score = (
                0.8 * weights.w_sim * c.sim
                + 0.7 * weights.w_bm25 * c.bm25_norm
                + weights.w_llm * (rel / 5)
                + c.boost
            )
            rescored.append(replace(c, llm_rel=float(rel), why=why, score=score))
        rescored.sort(key=lambda s: s.score, reverse=True)
        return rescored + list(candidates[self.max_candidates :])


def _clamp_rel(value: object) -> int:
    try:
        rel = int(value)  # type: ignore[arg-type]
    except OverflowError:
        # json accepts 1e400 and Infinity
        return 5 if value > 0 else 0  # type: ignore[operator]
    except (TypeError, ValueError):
        return 0
    return max(0, min(5, rel))
