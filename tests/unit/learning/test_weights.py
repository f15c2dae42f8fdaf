"""Tests for the weight learner."""

from __future__ import annotations

import pytest

from groundwork.db.models import DEFAULT_WEIGHTS, Feedback, Run
from groundwork.learning.weights import WeightLearner


def _rated_run(repo, run_id: str, top: dict, rating: int) -> None:
    repo.add_run(Run(id=run_id, query=f"query {run_id}"))
    repo.add_artifact(run_id, "retrieve:t1", [top, {"id": "other", "sim": 0.0, "bm25_norm": 0.0}])
    repo.add_feedback(Feedback(run_id=run_id, rating=rating))


def test_single_run_sets_proportional_weights(repo):
    _rated_run(repo, "r1", {"id": "a", "sim": 0.8, "bm25_norm": 0.4, "llm_rel": 5}, rating=5)

    weights = WeightLearner(repo).recompute()

    # sums: sim 4.0, bm25 2.0, llm 5.0
    assert weights.w_sim == pytest.approx(4 / 11)
    assert weights.w_bm25 == pytest.approx(2 / 11)
    assert weights.w_llm == pytest.approx(5 / 11)
    assert repo.get_weights().w_llm == pytest.approx(5 / 11)


def test_weights_always_sum_to_one(repo):
    _rated_run(repo, "r1", {"id": "a", "sim": 0.9, "bm25_norm": 0.1, "llm_rel": None}, rating=2)
    _rated_run(repo, "r2", {"id": "b", "sim": 0.2, "bm25_norm": 1.0, "llm_rel": 3}, rating=4)
    weights = WeightLearner(repo).recompute()
    assert weights.w_sim + weights.w_bm25 + weights.w_llm == pytest.approx(1.0)


def test_no_feedback_is_a_no_op(repo):
    assert WeightLearner(repo).recompute() is None
    assert repo.get_weights().w_sim == pytest.approx(DEFAULT_WEIGHTS.w_sim)


def test_feedback_without_retrieval_artifact_is_ignored(repo):
    repo.add_run(Run(id="r1", query="q"))
    repo.add_feedback(Feedback(run_id="r1", rating=5))
    assert WeightLearner(repo).recompute() is None


def test_all_zero_components_leave_weights(repo):
    _rated_run(repo, "r1", {"id": "a", "sim": 0.0, "bm25_norm": 0.0}, rating=5)
    assert WeightLearner(repo).recompute() is None
    assert repo.get_weights().w_bm25 == pytest.approx(DEFAULT_WEIGHTS.w_bm25)


def test_window_limits_runs(repo):
    _rated_run(repo, "old", {"id": "a", "sim": 1.0, "bm25_norm": 0.0}, rating=5)
    _rated_run(repo, "new", {"id": "b", "sim": 0.0, "bm25_norm": 1.0}, rating=5)
    weights = WeightLearner(repo, window=1).recompute()
    assert weights.w_bm25 == pytest.approx(1.0)
    assert weights.w_sim == pytest.approx(0.0)


def test_high_similarity_feedback_shifts_weight_to_similarity(repo):
    before = repo.get_weights()
    _rated_run(repo, "r1", {"id": "a", "sim": 0.9, "bm25_norm": 0.1, "llm_rel": None}, rating=5)
    after = WeightLearner(repo).recompute()
    assert after.w_sim / after.w_bm25 > before.w_sim / before.w_bm25
    assert after.w_llm == pytest.approx(0.0)
