"""In-memory BM25 lexical index over chunk texts.

Posting lists map ``term -> {chunk_id: term_count}``; document lengths are
kept per chunk. The whole index lives in memory and is rebuilt from the
repository on startup (or on demand via rebuild()).

Scoring:
  idf(t)   = ln(1 + (N - df + 0.5) / (df + 0.5))
  score(d) = Σ idf(t) * tf * (k1 + 1) / (tf + k1 * (1 - b + b * |d| / avgdl))
  k1 = 1.2, b = 0.75
"""

from __future__ import annotations

import math
import re
import threading
from collections import Counter
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from groundwork.db.repository import Repository

K1 = 1.2
B = 0.75

# Letters and digits in any script (diacritics kept), underscores split.
_TOKEN_RE = re.compile(r"[^\W_]+")


def tokenize(text: str) -> list[str]:
    """Lower-case *text* and split it on anything that is not a letter or digit."""
    return _TOKEN_RE.findall(text.lower())


class LexicalIndex:
    """Thread-safe BM25 index keyed by chunk id."""

    def __init__(self) -> None:
        self._postings: dict[str, dict[str, int]] = {}
        self._doc_len: dict[str, int] = {}
        self._total_len = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._doc_len)

    def __contains__(self, chunk_id: object) -> bool:
        with self._lock:
            return chunk_id in self._doc_len

    def add(self, chunk_id: str, text: str) -> None:
        """Index *text* under *chunk_id*. Re-adding an id replaces its postings."""
        counts = Counter(tokenize(text))
        with self._lock:
            self._remove_locked(chunk_id)
            for term, count in counts.items():
                self._postings.setdefault(term, {})[chunk_id] = count
            length = sum(counts.values())
            self._doc_len[chunk_id] = length
            self._total_len += length

    def remove(self, chunk_id: str) -> None:
        """Drop every posting for *chunk_id* (no-op when absent)."""
        with self._lock:
            self._remove_locked(chunk_id)

    def clear(self) -> None:
        with self._lock:
            self._postings.clear()
            self._doc_len.clear()
            self._total_len = 0

    def rebuild(self, repo: Repository) -> int:
        """Replace the index contents with every chunk in *repo*. Returns the doc count."""
        postings: dict[str, dict[str, int]] = {}
        doc_len: dict[str, int] = {}
        total = 0
        for chunk_id, text in repo.iter_chunk_texts():
            counts = Counter(tokenize(text))
            for term, count in counts.items():
                postings.setdefault(term, {})[chunk_id] = count
            doc_len[chunk_id] = sum(counts.values())
            total += doc_len[chunk_id]
        with self._lock:
            self._postings = postings
            self._doc_len = doc_len
            self._total_len = total
        return len(doc_len)

    def search(self, query: str, top_k: int = 10) -> list[tuple[str, float]]:
        """Return ``[(chunk_id, score)]`` best-first, at most *top_k* entries.

        Ties keep a deterministic order. An empty query or empty index
        returns [].
        """
        terms = tokenize(query)
        if not terms or top_k <= 0:
            return []
        with self._lock:
            n_docs = len(self._doc_len)
            if n_docs == 0:
                return []
            avgdl = self._total_len / n_docs or 1.0
            scores: dict[str, float] = {}
            for term in terms:
                posting = self._postings.get(term)
                if not posting:
                    continue
                df = len(posting)
                idf = math.log(1 + (n_docs - df + 0.5) / (df + 0.5))
                for chunk_id, tf in posting.items():
                    dl = self._doc_len[chunk_id]
                    denom = tf + K1 * (1 - B + B * dl / avgdl)
                    scores[chunk_id] = scores.get(chunk_id, 0.0) + idf * tf * (K1 + 1) / denom
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
        return ranked[:top_k]

    # ------------------------------------------------------------------

    def _remove_locked(self, chunk_id: str) -> None:
        length = self._doc_len.pop(chunk_id, None)
        if length is None:
            return
        self._total_len -= length
        empty: list[str] = []
        for term, posting in self._postings.items():
            if posting.pop(chunk_id, None) is not None and not posting:
                empty.append(term)
        for term in empty:
            del self._postings[term]
