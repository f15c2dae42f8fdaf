"""Typed errors raised by the retrieval-and-reasoning core.

Each error carries a stable ``code`` so callers (CLI, HTTP layer) can map it
to a response without string matching on messages.
"""

from __future__ import annotations


class GroundworkError(Exception):
    """Base class for all core errors."""

    code = "groundwork_error"


class PlannerFailed(GroundworkError):
    """The task graph is missing, malformed, or cannot be repaired."""

    code = "planner_failed"


class RagFailed(GroundworkError):
    """Task-graph execution failed; no partial answer is returned."""

    code = "rag_failed"


class AnnotationIncomplete(GroundworkError):
    """A full-coverage annotator left one or more chunks unannotated."""

    code = "annotation_incomplete"

    def __init__(self, annotator: str, missing_ids: list[str]) -> None:
        self.annotator = annotator
        self.missing_ids = list(missing_ids)
        super().__init__(
            f"Annotation incomplete for '{annotator}': "
            f"{len(self.missing_ids)} chunk(s) without labels"
        )


class UnknownRun(GroundworkError, LookupError):
    """A run id does not exist in the store."""

    code = "unknown_run"

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' not found")
