"""Feedback-driven learning: retrieval weights and lexicon maintenance."""

from groundwork.learning.lexicon import embed_terms, harvest_entities, promote_labels
from groundwork.learning.weights import WeightLearner

__all__ = ["WeightLearner", "embed_terms", "harvest_entities", "promote_labels"]
