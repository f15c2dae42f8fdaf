"""Annotation pipeline: cache lookup, batched remote labelling, in-flight dedupe.

For a remote annotator, annotate(chunks, annotator):
  1. Loads cached rows for ``(chunk_id, annotator.key)``.
  2. Sends only the uncached chunks, in one call.
  3. Writes fresh payloads back (insert-or-replace) and returns cache ∪ fresh.
  4. Raises AnnotationIncomplete when a full-coverage annotator leaves any
     chunk without a payload.

Concurrent callers asking for the same ``(annotator key, uncached ids)`` set
share one outstanding call: the first becomes the owner, the others wait on
its future.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout

from groundwork.annotate.base import Annotator, LocalAnnotator, RemoteAnnotator
from groundwork.db.models import Chunk
from groundwork.db.repository import Repository
from groundwork.errors import AnnotationIncomplete
from groundwork.rag.jsonparse import extract_json_array
from groundwork.rag.llm_client import TextGenerator

logger = logging.getLogger(__name__)

Payloads = dict[str, object]


class AnnotationPipeline:
    """Runs annotators over chunk batches with a persistent per-version cache.

    Args:
        repo: Repository holding the annotation cache.
        generator: Text generator for remote annotators (None: every remote
            call counts as failed).
        model: Model passed to the generator.
        wait_timeout_s: Upper bound for waiting on another caller's in-flight
            request.
    """

    def __init__(
        self,
        repo: Repository,
        generator: TextGenerator | None = None,
        model: str = "",
        wait_timeout_s: float | None = 60.0,
    ) -> None:
        self.repo = repo
        self.generator = generator
        self.model = model
        self.wait_timeout_s = wait_timeout_s
        self._inflight: dict[tuple[str, tuple[str, ...]], Future] = {}
        self._lock = threading.Lock()

    def annotate(self, chunks: list[Chunk], annotator: Annotator) -> Payloads:
        """Return ``{chunk_id: payload}`` for every chunk in *chunks*.

        Raises:
            AnnotationIncomplete: A full-coverage annotator left chunks without
                a payload (call failed or omitted indices).
        """
        unique: dict[str, Chunk] = {}
        for chunk in chunks:
            unique.setdefault(chunk.id, chunk)
        if not unique:
            return {}

        if isinstance(annotator, LocalAnnotator):
            return {cid: annotator.annotate_local(c) for cid, c in unique.items()}
        if not isinstance(annotator, RemoteAnnotator):
            raise TypeError(f"Unsupported annotator type: {type(annotator).__name__}")

        ids = list(unique)
        result: Payloads = dict(self.repo.get_annotations(annotator.key, ids))
        need = [unique[cid] for cid in ids if cid not in result]
        if need:
            result.update(self._fetch_shared(annotator, need))

        missing = [cid for cid in ids if cid not in result]
        if missing and annotator.full_coverage:
            raise AnnotationIncomplete(annotator.key, missing)
        return result

    # ------------------------------------------------------------------
    # In-flight dedupe
    # ------------------------------------------------------------------

    def _fetch_shared(self, annotator: RemoteAnnotator, need: list[Chunk]) -> Payloads:
        key = (annotator.key, tuple(sorted(c.id for c in need)))
        with self._lock:
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            try:
                return future.result(timeout=self.wait_timeout_s)
            except FutureTimeout:
                logger.warning(
                    "stage=annotate annotator=%s chunks=%d timed out waiting for in-flight call",
                    annotator.key,
                    len(need),
                )
                return {}

        try:
            # A previous owner may have filled the cache since our lookup.
            cached = self.repo.get_annotations(annotator.key, [c.id for c in need])
            remaining = [c for c in need if c.id not in cached]
            fresh = self._call(annotator, remaining) if remaining else {}
            if fresh:
                self.repo.put_annotations(annotator.key, fresh)
            merged = {**cached, **fresh}
            future.set_result(merged)
            return merged
        except BaseException as exc:
            future.set_exception(exc)
            raise
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def _call(self, annotator: RemoteAnnotator, need: list[Chunk]) -> Payloads:
        """Issue the single external labelling call. Failures yield {}."""
        ids = [c.id for c in need]
        if self.generator is None:
            logger.warning(
                "stage=annotate annotator=%s chunks=%d no text generator configured",
                annotator.key,
                len(need),
            )
            return {}
        try:
            raw = self.generator.generate(
                self.model, annotator.build_prompt(need), annotator.max_tokens, 0.0
            )
        except Exception as exc:
            logger.warning(
                "stage=annotate annotator=%s ids=%s call failed: %s",
                annotator.key,
                ",".join(ids[:10]),
                exc,
            )
            return {}

        items = extract_json_array(raw)
        if items is None:
            logger.warning(
                "stage=annotate annotator=%s chunks=%d unparseable response",
                annotator.key,
                len(need),
            )
            return {}
        by_index = annotator.parse_response(items, len(need))
        return {need[i].id: payload for i, payload in by_index.items()}
