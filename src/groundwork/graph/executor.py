"""Task-graph executor.

Runs a validated TaskGraph in one forward pass. Each task's output is stored
under its id and consumed by later tasks through their ``inputs``; the last
task's output is returned. Every stage writes an audit artifact
(``retrieve:t1``, ``annotate:t2``, ...).

Errors:
  PlannerFailed  propagates unchanged.
  RagFailed      a task failed (including a required annotator left
                 incomplete); no partial result is returned.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace

from groundwork.annotate import AnnotationPipeline, Annotator
from groundwork.db.models import RetrievalWeights
from groundwork.db.repository import Repository
from groundwork.errors import AnnotationIncomplete, PlannerFailed, RagFailed
from groundwork.graph.reasoning import (
    ComposedAnswer,
    Evidence,
    ReasonResult,
    ValidationResult,
    compose,
    reason,
    validate,
)
from groundwork.graph.tasks import (
    AnnotateTask,
    ComposeTask,
    ReasonTask,
    RetrieveTask,
    Task,
    TaskGraph,
    ValidateTask,
)
from groundwork.learning.lexicon import harvest_entities
from groundwork.rag.retriever import HybridRetriever, ScoredChunk

logger = logging.getLogger(__name__)

_RETRIEVE_ARTIFACT_LIMIT = 20
_ANNOTATE_ARTIFACT_LIMIT = 30


class _RunState:
    """Per-execution scratch space: task outputs and collected issues."""

    def __init__(self, run_id: str | None) -> None:
        self.run_id = run_id
        self.outputs: dict[str, object] = {}
        self.issues: list[str] = []
        self.annotated: list[Evidence] = []


class Executor:
    """Executes task graphs against the retrieval and annotation components.

    Args:
        retriever: Hybrid retriever used by retrieve tasks.
        annotations: Annotation pipeline used by annotate tasks.
        repo: Repository for artifacts and lexicon harvesting.
        weights_source: Returns the current retrieval weights (read per task).
        annotators: Annotator registry keyed by name.
    """

    def __init__(
        self,
        retriever: HybridRetriever,
        annotations: AnnotationPipeline,
        repo: Repository,
        weights_source: Callable[[], RetrievalWeights],
        annotators: dict[str, Annotator],
    ) -> None:
        self.retriever = retriever
        self.annotations = annotations
        self.repo = repo
        self.weights_source = weights_source
        self.annotators = annotators

    def execute(self, graph: TaskGraph, run_id: str | None = None) -> object:
        """Run *graph* and return the output of its last task.

        Raises:
            PlannerFailed: The graph references something it cannot resolve.
            RagFailed: A task failed.
        """
        state = _RunState(run_id)
        for task in graph.tasks:
            try:
                state.outputs[task.id] = self._run_task(task, state)
            except (PlannerFailed, RagFailed):
                raise
            except Exception as exc:
                logger.warning("stage=execute run=%s task=%s failed: %s", run_id, task.id, exc)
                raise RagFailed(f"Task '{task.id}' failed: {exc}") from exc
        return state.outputs[graph.last.id]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _run_task(self, task: Task, state: _RunState) -> object:
        if isinstance(task, RetrieveTask):
            return self._retrieve(task, state)
        if isinstance(task, AnnotateTask):
            return self._annotate(task, state)
        if isinstance(task, ReasonTask):
            return self._reason(task, state)
        if isinstance(task, ValidateTask):
            return self._validate(task, state)
        if isinstance(task, ComposeTask):
            return self._compose(task, state)
        raise PlannerFailed(f"Unsupported task type: {type(task).__name__}")

    def _retrieve(self, task: RetrieveTask, state: _RunState) -> list[ScoredChunk]:
        hits = self.retriever.search(task.query, task.k, self.weights_source())
        self._artifact(
            state, f"retrieve:{task.id}", [h.to_payload() for h in hits[:_RETRIEVE_ARTIFACT_LIMIT]]
        )
        return hits

    def _annotate(self, task: AnnotateTask, state: _RunState) -> list[Evidence]:
        evidence = [replace(ev, labels=list(ev.labels)) for ev in self._evidence(task, state)]
        chunks = [ev.chunk for ev in evidence]
        for name in task.annotators:
            annotator = self.annotators[name]
            try:
                payloads = self.annotations.annotate(chunks, annotator)
            except AnnotationIncomplete as exc:
                if name in task.required:
                    raise RagFailed(f"Required annotator '{name}' incomplete: {exc}") from exc
                logger.warning(
                    "stage=annotate run=%s task=%s annotator=%s missing=%d continuing",
                    state.run_id,
                    task.id,
                    annotator.key,
                    len(exc.missing_ids),
                )
                if f"annotation_incomplete:{name}" not in state.issues:
                    state.issues.append(f"annotation_incomplete:{name}")
                continue
            for ev in evidence:
                if ev.id in payloads:
                    _merge_payload(ev, name, payloads[ev.id])

        harvest_entities(self.repo, evidence)
        state.annotated = evidence
        self._artifact(
            state,
            f"annotate:{task.id}",
            [ev.to_payload() for ev in evidence[:_ANNOTATE_ARTIFACT_LIMIT]],
        )
        return evidence

    def _reason(self, task: ReasonTask, state: _RunState) -> ReasonResult:
        result = reason(self._evidence(task, state), task.goal)
        self._artifact(state, f"reason:{task.id}", result.to_dict())
        return result

    def _validate(self, task: ValidateTask, state: _RunState) -> ValidationResult:
        result = self._reason_input(task, state)
        checked = validate(result, state.annotated, state.issues)
        self._artifact(state, f"validate:{task.id}", checked.to_dict())
        return checked

    def _compose(self, task: ComposeTask, state: _RunState) -> ComposedAnswer:
        upstream = [state.outputs[ref] for ref in task.inputs]
        structured = [o for o in upstream if isinstance(o, (ValidationResult, ReasonResult))]
        if structured:
            answer = compose(structured[-1], task.format)
        else:
            answer = compose(reason(self._evidence(task, state), "general_lookup"), task.format)
        self._artifact(state, f"compose:{task.id}", answer.to_dict())
        return answer

    # ------------------------------------------------------------------
    # Input resolution
    # ------------------------------------------------------------------

    def _evidence(self, task: Task, state: _RunState) -> list[Evidence]:
        """Flatten the evidence outputs of *task*'s inputs, first occurrence wins."""
        flat: dict[str, Evidence] = {}
        for ref in task.inputs:
            output = state.outputs[ref]
            if not isinstance(output, list):
                raise RagFailed(
                    f"Task '{task.id}' cannot use the output of '{ref}' as evidence"
                )
            for item in output:
                ev = Evidence.from_scored(item) if isinstance(item, ScoredChunk) else item
                flat.setdefault(ev.id, ev)
        return list(flat.values())

    def _reason_input(self, task: Task, state: _RunState) -> ReasonResult:
        for ref in reversed(task.inputs):
            output = state.outputs[ref]
            if isinstance(output, ReasonResult):
                return output
            if isinstance(output, ValidationResult):
                return output.result
        return reason(self._evidence(task, state), "general_lookup")

    def _artifact(self, state: _RunState, stage: str, payload: object) -> None:
        self.repo.add_artifact(state.run_id, stage, payload)


def _merge_payload(ev: Evidence, annotator: str, payload: object) -> None:
    if annotator in ("basic", "claims") and isinstance(payload, list):
        for label in payload:
            if label not in ev.labels:
                ev.labels.append(label)
    elif annotator == "entities" and isinstance(payload, list):
        ev.entities = list(payload)
    elif annotator == "dates" and isinstance(payload, list):
        ev.dates = list(payload)
