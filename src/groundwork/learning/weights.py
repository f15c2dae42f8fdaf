"""Weight learner: recompute hybrid weights from rated runs.

For each of the latest N runs that have both feedback and a retrieval
artifact, the top-ranked candidate's components are weighted by the rating:

  Σ sim * rating,  Σ bm25_norm * rating,  Σ (llm_rel / 5) * rating

The three sums are normalized to 1 and stored in one statement. With no
eligible runs, or all-zero sums, the stored weights are left untouched.
"""

from __future__ import annotations

import logging

from groundwork.db.models import RetrievalWeights
from groundwork.db.repository import Repository

logger = logging.getLogger(__name__)


class WeightLearner:
    """Recomputes RetrievalWeights from accumulated feedback.

    Args:
        repo: Repository with runs, artifacts, and feedback.
        window: Number of most recent rated runs considered.
    """

    def __init__(self, repo: Repository, window: int = 30) -> None:
        self.repo = repo
        self.window = window

    def recompute(self) -> RetrievalWeights | None:
        """Recompute and persist the weights. Returns the new weights, or None on no-op."""
        rows = self.repo.feedback_with_retrieval(self.window)
        sum_sim = sum_bm25 = sum_llm = 0.0
        used = 0
        for run_id, rating, payload in rows:
            if not payload or not isinstance(payload[0], dict):
                continue
            top = payload[0]
            weight = rating or 1
            llm_rel = top.get("llm_rel")
            sum_sim += float(top.get("sim") or 0.0) * weight
            sum_bm25 += float(top.get("bm25_norm") or 0.0) * weight
            sum_llm += (float(llm_rel) / 5 if llm_rel is not None else 0.0) * weight
            used += 1

        if used == 0 or sum_sim + sum_bm25 + sum_llm <= 0:
            logger.info("stage=weights runs=%d no eligible feedback, weights unchanged", used)
            return None

        saved = self.repo.save_weights(
            RetrievalWeights(w_sim=sum_sim, w_bm25=sum_bm25, w_llm=sum_llm)
        )
        logger.info(
            "stage=weights runs=%d w_sim=%.3f w_bm25=%.3f w_llm=%.3f",
            used,
            saved.w_sim,
            saved.w_bm25,
            saved.w_llm,
        )
        return saved
