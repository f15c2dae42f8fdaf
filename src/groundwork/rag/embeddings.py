"""Embedding provider with a deterministic hash fallback.

The external provider (any litellm embedding model) is tried first, in
batches. When no model is configured, or the call fails for any reason, the
affected texts get a pseudo-embedding: whitespace tokens hashed into a fixed
number of buckets and L2-normalized. Fallback vectors are deterministic, so
identical text always produces an identical vector.
"""

from __future__ import annotations

import logging
import math

from groundwork.rag.llm_client import embed as _litellm_embed

logger = logging.getLogger(__name__)

_MAX_FALLBACK_TOKENS = 512
_HASH_MOD = 2**32


def pseudo_embedding(text: str, dims: int = 128) -> list[float]:
    """Hash the first 512 lower-cased whitespace tokens of *text* into *dims* buckets.

    Each token is hashed with a base-31 polynomial modulo 2**32; its bucket
    is incremented. The result is L2-normalized (all-zero stays all-zero).
    """
    vec = [0.0] * dims
    for token in text.lower().split()[:_MAX_FALLBACK_TOKENS]:
        h = 0
        for ch in token:
            h = (h * 31 + ord(ch)) % _HASH_MOD
        vec[h % dims] += 1.0
    norm = math.sqrt(sum(v * v for v in vec))
    if norm == 0:
        return vec
    return [v / norm for v in vec]


def cosine(a: list[float] | None, b: list[float] | None) -> float:
    """Cosine similarity over the shared prefix of *a* and *b*.

    Missing or empty vectors score 0. A zero-norm side counts as norm 1 so
    the result stays finite.
    """
    if not a or not b:
        return 0.0
    n = min(len(a), len(b))
    dot = na = nb = 0.0
    for i in range(n):
        x, y = a[i], b[i]
        dot += x * y
        na += x * x
        nb += y * y
    return dot / ((math.sqrt(na) or 1.0) * (math.sqrt(nb) or 1.0))


class EmbeddingProvider:
    """Embeds texts via litellm, falling back to pseudo_embedding().

    Args:
        model: LiteLLM embedding model string. Empty means fallback only.
        timeout_s: Per-request timeout for the external call.
        batch_size: Texts per external request.
        fallback_dims: Dimension of the pseudo-embedding.
    """

    def __init__(
        self,
        model: str = "",
        timeout_s: float = 20.0,
        batch_size: int = 64,
        fallback_dims: int = 128,
    ) -> None:
        self.model = model
        self.timeout_s = timeout_s
        self.batch_size = max(1, batch_size)
        self.fallback_dims = fallback_dims

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per text, in input order. Never raises."""
        if not texts:
            return []
        if not self.model:
            return [pseudo_embedding(t, self.fallback_dims) for t in texts]

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                vectors.extend(_litellm_embed(self.model, batch, timeout=self.timeout_s))
            except Exception as exc:
                logger.warning(
                    "stage=embed model=%s batch=%d falling back to hash embedding: %s",
                    self.model,
                    len(batch),
                    exc,
                )
                vectors.extend(pseudo_embedding(t, self.fallback_dims) for t in batch)
        return vectors

    def embed_one(self, text: str) -> list[float]:
        return self.embed([text])[0]
