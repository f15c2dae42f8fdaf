"""Planner: query → intents → task graph.

Intents are detected with lightweight patterns (English and Italian). When a
text generator is configured, its intent parse (one call, JSON object) is
merged in front of the heuristic result; any failure falls back to the
heuristic alone.

The default plan is always:

  t1 retrieve(query, k) → t2 annotate(basic + goal-specific)
     → t3 reason(goal) → t4 validate → t5 compose(format)

Externally supplied graphs go through repair_graph(), a single deterministic
repair pass, before they reach the executor.
"""

from __future__ import annotations

import logging
import re

from groundwork.errors import PlannerFailed
from groundwork.graph.tasks import (
    TASK_TYPES,
    AnnotateTask,
    ComposeTask,
    ReasonTask,
    RetrieveTask,
    Task,
    TaskGraph,
    ValidateTask,
)
from groundwork.rag.jsonparse import extract_json_object
from groundwork.rag.llm_client import TextGenerator

logger = logging.getLogger(__name__)

# Checked in priority order; the first match is the reasoning goal.
_INTENT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "policy_lookup",
        re.compile(
            r"vietat|proibit|divieto|consentit|permess|si può|posso|regol|normativ"
            r"|policy|allowed|permitted|prohibit|forbidden|can i\b|can we\b|compliance|claim",
            re.IGNORECASE,
        ),
    ),
    (
        "timeline",
        re.compile(
            r"\b(quando|timeline|cronologi\w*|scadenz\w*|deadline\w*|when|history|storico|entro|dates?)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "comparison",
        re.compile(r"confront|compar|differenz|difference|versus|\bvs\b|rispetto a", re.IGNORECASE),
    ),
    (
        "summary",
        re.compile(r"riassum|riepilog|sintesi|summar|overview|panoramica", re.IGNORECASE),
    ),
)

_GOAL_ANNOTATORS: dict[str, tuple[str, ...]] = {
    "policy_lookup": ("basic", "claims", "entities"),
    "timeline": ("basic", "dates"),
    "comparison": ("basic", "entities"),
    "summary": ("basic", "dates"),
    "general_lookup": ("basic", "dates"),
}

_GOAL_FORMAT: dict[str, str] = {
    "timeline": "timeline",
    "comparison": "list",
}

_ACTION_INTENT: dict[str, str] = {
    "POLICY": "policy_lookup",
    "TIMELINE": "timeline",
    "STATUS": "timeline",
    "COMPARE": "comparison",
    "SUMMARIZE": "summary",
    "REPORT": "summary",
    "SEARCH": "general_lookup",
    "LIST": "general_lookup",
}

_INTENT_PROMPT = """\
Analyse the user's query for a marketing and project-management agency.
Query: "{query}"
Reply with a JSON object only: {{"action": "ACTION"}}
ACTION is one of: POLICY (what is allowed / prohibited, claims), TIMELINE
(dates, deadlines, status over time), COMPARE, SUMMARIZE, SEARCH, UNKNOWN."""


def detect_intents(query: str) -> list[str]:
    """Return the heuristic intents of *query*, highest priority first."""
    intents = [name for name, pattern in _INTENT_PATTERNS if pattern.search(query)]
    return intents or ["general_lookup"]


class Planner:
    """Maps a query to a TaskGraph.

    Args:
        generator: Optional text generator for intent parsing.
        model: Model passed to the generator.
        top_k: ``k`` of the retrieve task.
    """

    def __init__(
        self,
        generator: TextGenerator | None = None,
        model: str = "",
        top_k: int = 12,
    ) -> None:
        self.generator = generator
        self.model = model
        self.top_k = top_k

    def intents(self, query: str) -> list[str]:
        heuristic = detect_intents(query)
        parsed = self._parse_intent(query)
        if parsed is None:
            return heuristic
        merged = [parsed] + [i for i in heuristic if i != parsed]
        if len(merged) > 1 and "general_lookup" in merged:
            merged.remove("general_lookup")
        return merged

    def plan(self, query: str) -> TaskGraph:
        """Build the default graph for *query*.

        Raises:
            PlannerFailed: If the query is empty.
        """
        if not query or not query.strip():
            raise PlannerFailed("Cannot plan an empty query")
        intents = self.intents(query)
        goal = intents[0]
        tasks: list[Task] = [
            RetrieveTask(id="t1", query=query.strip(), k=self.top_k),
            AnnotateTask(id="t2", inputs=("t1",), annotators=_GOAL_ANNOTATORS.get(goal, ("basic",))),
            ReasonTask(id="t3", inputs=("t2",), goal=goal),
            ValidateTask(id="t4", inputs=("t3",)),
            ComposeTask(id="t5", inputs=("t4",), format=_GOAL_FORMAT.get(goal, "text")),
        ]
        return TaskGraph(tasks, intents)

    def _parse_intent(self, query: str) -> str | None:
        if self.generator is None:
            return None
        try:
            raw = self.generator.generate(
                self.model, _INTENT_PROMPT.format(query=query), 200, 0.0
            )
        except Exception as exc:
            logger.warning("stage=plan query=%r intent parse failed: %s", query, exc)
            return None
        data = extract_json_object(raw)
        if data is None:
            logger.warning("stage=plan query=%r intent parse returned no JSON", query)
            return None
        return _ACTION_INTENT.get(str(data.get("action", "")).upper())


# ------------------------------------------------------------------
# Repair
# ------------------------------------------------------------------


def repair_graph(raw: object, query: str | None = None) -> TaskGraph:
    """Turn a loosely-formed graph description into a validated TaskGraph.

    One deterministic pass:
      * a missing id becomes ``t{position}`` (1-based);
      * inputs of a non-retrieve task that do not name an earlier task are
        dropped; if none remain, the nearest prior task is used;
      * a retrieve task without a query uses *query*.

    Raises:
        PlannerFailed: The description is not a graph, names an unknown task
            type, repeats an id, or a task has no prior task to fall back to.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("tasks"), list):
        raise PlannerFailed("Task graph must be an object with a 'tasks' list")
    items = raw["tasks"]
    if not items:
        raise PlannerFailed("Task graph has no tasks")

    tasks: list[Task] = []
    seen: list[str] = []
    for position, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise PlannerFailed(f"Task at position {position} is not an object")
        kind = item.get("type")
        if not isinstance(kind, str) or kind not in TASK_TYPES:
            raise PlannerFailed(f"Task at position {position} has unknown type {kind!r}")

        task_id = str(item.get("id") or f"t{position}")
        if task_id in seen:
            raise PlannerFailed(f"Duplicate task id '{task_id}'")

        if kind == "retrieve":
            tasks.append(_retrieve_from(item, task_id, query))
        else:
            inputs = _repair_inputs(item.get("inputs"), seen, task_id)
            tasks.append(_task_from(kind, item, task_id, inputs))
        seen.append(task_id)

    intents = raw.get("intents")
    return TaskGraph(tasks, [str(i) for i in intents] if isinstance(intents, list) else [])


def _repair_inputs(raw_inputs: object, seen: list[str], task_id: str) -> tuple[str, ...]:
    refs = raw_inputs if isinstance(raw_inputs, list) else []
    kept = tuple(dict.fromkeys(str(r) for r in refs if str(r) in seen))
    if kept:
        return kept
    if not seen:
        raise PlannerFailed(
            f"Task '{task_id}' has no resolvable inputs and no prior task to fall back to"
        )
    return (seen[-1],)


def _retrieve_from(item: dict, task_id: str, query: str | None) -> RetrieveTask:
    criteria = item.get("criteria")
    text = item.get("query")
    if not text and isinstance(criteria, dict):
        text = criteria.get("raw")
    text = text or query
    if not isinstance(text, str) or not text.strip():
        raise PlannerFailed(f"Retrieve task '{task_id}' has no query")
    k = item.get("k", 12)
    return RetrieveTask(id=task_id, query=text.strip(), k=k if isinstance(k, int) else 12)


def _task_from(kind: str, item: dict, task_id: str, inputs: tuple[str, ...]) -> Task:
    if kind == "annotate":
        annotators = item.get("annotators") or ["basic"]
        if isinstance(annotators, str):
            annotators = [annotators]
        required = item.get("required") or []
        if isinstance(required, str):
            required = [required]
        return AnnotateTask(
            id=task_id,
            inputs=inputs,
            annotators=tuple(str(a) for a in annotators),
            required=tuple(str(a) for a in required),
        )
    if kind == "reason":
        return ReasonTask(id=task_id, inputs=inputs, goal=str(item.get("goal") or "general_lookup"))
    if kind == "validate":
        return ValidateTask(id=task_id, inputs=inputs)
    if kind == "compose":
        return ComposeTask(id=task_id, inputs=inputs, format=str(item.get("format") or "text"))
    raise PlannerFailed(f"Task '{task_id}' has unsupported type '{kind}'")
