"""Tests for the relevance-judgement reranker."""

from __future__ import annotations

import json

import pytest

from groundwork.db.models import Chunk, RetrievalWeights
from groundwork.rag.reranker import LRUCache, Reranker
from groundwork.rag.retriever import ScoredChunk

_WEIGHTS = RetrievalWeights(w_sim=0.4, w_bm25=0.4, w_llm=0.2)


def _candidates(n: int) -> list[ScoredChunk]:
    return [
        ScoredChunk(
            chunk=Chunk(id=f"c{i}", text=f"passage {i}"),
            score=1.0 - i * 0.1,
            sim=0.5,
            bm25_norm=1.0 - i * 0.1,
        )
        for i in range(n)
    ]


def _grades(grades: dict[int, int]):
    def respond(prompt: str) -> str:
        return json.dumps([{"i": i, "rel": rel, "why": f"grade {rel}"} for i, rel in grades.items()])

    return respond


# ------------------------------------------------------------------
# LRUCache
# ------------------------------------------------------------------


def test_lru_evicts_least_recently_used():
    cache = LRUCache(maxsize=2)
    cache.put("a", 1)
    cache.put("b", 2)
    assert cache.get("a") == 1
    cache.put("c", 3)
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_lru_zero_size_stores_nothing():
    cache = LRUCache(maxsize=0)
    cache.put("a", 1)
    assert cache.get("a") is None


# ------------------------------------------------------------------
# Reranker
# ------------------------------------------------------------------


def test_rerank_recombines_scores(fake_generator):
    gen = fake_generator(_grades({0: 0, 1: 5}))
    reranker = Reranker(gen, "model")
    out = reranker.rerank("q", _candidates(2), _WEIGHTS)

    assert [c.id for c in out] == ["c1", "c0"]
    top = out[0]
    assert top.llm_rel == 5.0
    expected = 0.8 * 0.4 * 0.5 + 0.7 * 0.4 * top.bm25_norm + 0.2 * 1.0
    assert top.score == pytest.approx(expected)
    assert "Reranking" in gen.calls[0]


def test_omitted_candidates_get_zero(fake_generator):
    reranker = Reranker(fake_generator(_grades({1: 3})), "model")
    judgements = reranker.judge("q", _candidates(2))
    assert judgements["c0"] == (0, None)
    assert judgements["c1"] == (3, "grade 3")


def test_rel_is_clamped(fake_generator):
    reranker = Reranker(fake_generator(lambda p: '[{"i": 0, "rel": 9}, {"i": 1, "rel": "bad"}]'), "m")
    judgements = reranker.judge("q", _candidates(2))
    assert judgements["c0"][0] == 5
    assert judgements["c1"][0] == 0


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('[{"i": 0, "rel": 1e400}]', 5),
        ('[{"i": 0, "rel": Infinity}]', 5),
        ('[{"i": 0, "rel": -Infinity}]', 0),
        ('[{"i": 0, "rel": NaN}]', 0),
    ],
)
def test_non_finite_rel_is_clamped(fake_generator, raw, expected):
    reranker = Reranker(fake_generator(lambda p: raw), "m")
    assert reranker.judge("q", _candidates(1))["c0"][0] == expected
    reranked = reranker.rerank("q2", _candidates(2), _WEIGHTS)
    assert reranked is not None
    assert [c.id for c in reranked] == ["c0", "c1"]


def test_cached_judgement_skips_second_call(fake_generator):
    gen = fake_generator(_grades({0: 2, 1: 4}))
    reranker = Reranker(gen, "model")
    cands = _candidates(2)
    first = reranker.judge("q", cands)
    second = reranker.judge("q", list(reversed(cands)))
    assert first == second
    assert len(gen.calls) == 1


def test_failure_returns_none(fake_generator, caplog):
    reranker = Reranker(fake_generator(fail=True), "model")
    assert reranker.rerank("q", _candidates(3), _WEIGHTS) is None
    assert "stage=rerank" in caplog.text


def test_unparseable_response_returns_none(fake_generator):
    reranker = Reranker(fake_generator(lambda p: "sorry"), "model")
    assert reranker.judge("q", _candidates(1)) is None


def test_candidates_beyond_limit_keep_order(fake_generator):
    gen = fake_generator(_grades({0: 1, 1: 5}))
    reranker = Reranker(gen, "model", max_candidates=2)
    out = reranker.rerank("q", _candidates(4), _WEIGHTS)
    assert [c.id for c in out] == ["c1", "c0", "c2", "c3"]
    assert out[2].llm_rel is None


def test_empty_candidates(fake_generator):
    gen = fake_generator()
    assert Reranker(gen, "m").judge("q", []) == {}
    assert gen.calls == []
