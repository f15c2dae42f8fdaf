"""Offline retrieval evaluation.

groundtruth_metrics: precision@k / recall@k of the latest run per labelled
query against the ground-truth table.

feedback_precision: rating-weighted share of top-k candidates that look
relevant (similarity > 0.2 or reranker grade >= 3), over rated runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from groundwork.db.repository import Repository


@dataclass
class MetricsReport:
    queries: int = 0
    precision: dict[int, float] = field(default_factory=dict)
    recall: dict[int, float] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def groundtruth_metrics(repo: Repository, k_values: tuple[int, ...] = (5, 10)) -> MetricsReport:
    """Average precision@k and recall@k over every query with ground truth.

    Queries without a run (or without a retrieve artifact) are listed in
    ``skipped`` and left out of the averages.
    """
    relevant_by_query: dict[str, set[str]] = {}
    for item in repo.list_ground_truth():
        bucket = relevant_by_query.setdefault(item.query, set())
        if item.relevant:
            bucket.add(item.chunk_id)

    report = MetricsReport()
    sums_p = {k: 0.0 for k in k_values}
    sums_r = {k: 0.0 for k in k_values}
    for query, relevant in relevant_by_query.items():
        run_id = repo.latest_run_id(query)
        payload = repo.first_retrieval_payload(run_id) if run_id else None
        if payload is None:
            report.skipped.append(query)
            continue
        ranked = [item.get("id") for item in payload if isinstance(item, dict)]
        report.queries += 1
        for k in k_values:
            hits = sum(1 for cid in ranked[:k] if cid in relevant)
            sums_p[k] += hits / k
            sums_r[k] += hits / len(relevant) if relevant else 0.0

    if report.queries:
        report.precision = {k: sums_p[k] / report.queries for k in k_values}
        report.recall = {k: sums_r[k] / report.queries for k in k_values}
    return report


def feedback_precision(
    repo: Repository, k_values: tuple[int, ...] = (5, 10, 20), window: int = 200
) -> dict[int, float | None]:
    """Feedback-weighted precision@k over the newest rated runs.

    For each rated run, precision@k is the share of its top-k candidates that
    look relevant (sim > 0.2 or reranker grade >= 3), counted only when the
    rating is 4 or 5. Returns None for a k with no samples.
    """
    sums = {k: 0.0 for k in k_values}
    counts = {k: 0 for k in k_values}
    for _run_id, rating, payload in repo.feedback_with_retrieval(window):
        positive = 1.0 if rating >= 4 else 0.0
        for k in k_values:
            top = [p for p in payload[:k] if isinstance(p, dict)]
            if not top:
                continue
            hits = sum(
                1 for p in top if (p.get("sim") or 0.0) > 0.2 or (p.get("llm_rel") or 0.0) >= 3
            )
            sums[k] += positive * hits / k
            counts[k] += 1
    return {k: (sums[k] / counts[k] if counts[k] else None) for k in k_values}
