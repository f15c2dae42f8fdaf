"""Task graph types.

A task graph is a closed set of task kinds, each a frozen dataclass with its
own typed parameters. TaskGraph validates the whole graph at construction:
ids are unique, every input names an earlier task (so the list order is a
topological order and cycles cannot be expressed), retrieve tasks take no
inputs, and every other task takes at least one.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Union

from groundwork.errors import PlannerFailed

KNOWN_ANNOTATORS: frozenset[str] = frozenset(["basic", "dates", "claims", "entities"])
COMPOSE_FORMATS: frozenset[str] = frozenset(["text", "list", "timeline"])


@dataclass(frozen=True)
class RetrieveTask:
    id: str
    query: str
    k: int = 12
    inputs: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnnotateTask:
    """Runs *annotators* over the flattened evidence of *inputs*.

    Annotators listed in *required* abort the run when their output is
    incomplete; the others are best-effort.
    """

    id: str
    inputs: tuple[str, ...]
    annotators: tuple[str, ...] = ("basic",)
    required: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReasonTask:
    id: str
    inputs: tuple[str, ...]
    goal: str = "general_lookup"


@dataclass(frozen=True)
class ValidateTask:
    id: str
    inputs: tuple[str, ...]


@dataclass(frozen=True)
class ComposeTask:
    id: str
    inputs: tuple[str, ...]
    format: str = "text"


Task = Union[RetrieveTask, AnnotateTask, ReasonTask, ValidateTask, ComposeTask]

TASK_TYPES: dict[str, type] = {
    "retrieve": RetrieveTask,
    "annotate": AnnotateTask,
    "reason": ReasonTask,
    "validate": ValidateTask,
    "compose": ComposeTask,
}

_TYPE_NAMES: dict[type, str] = {cls: name for name, cls in TASK_TYPES.items()}


def task_type(task: Task) -> str:
    """Return the wire name (``retrieve``, ``annotate``, ...) of *task*."""
    return _TYPE_NAMES[type(task)]


class TaskGraph:
    """An ordered, validated DAG of tasks answering one query.

    Args:
        tasks: Tasks in execution order.
        intents: Intents detected for the query.

    Raises:
        PlannerFailed: If the graph is empty, has duplicate ids, references
            an input that is not an earlier task, or has tasks with invalid
            parameters.
    """

    def __init__(self, tasks: list[Task], intents: list[str] | None = None) -> None:
        self.tasks: tuple[Task, ...] = tuple(tasks)
        self.intents: list[str] = list(intents or [])
        self.by_id: dict[str, Task] = {}
        self._validate()

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    def __repr__(self) -> str:
        return f"TaskGraph({[t.id for t in self.tasks]}, intents={self.intents})"

    @property
    def last(self) -> Task:
        return self.tasks[-1]

    def to_dict(self) -> dict:
        tasks = []
        for task in self.tasks:
            data = asdict(task)
            data = {k: list(v) if isinstance(v, tuple) else v for k, v in data.items()}
            tasks.append({"type": task_type(task), **data})
        return {"intents": list(self.intents), "tasks": tasks}

    # ------------------------------------------------------------------

    def _validate(self) -> None:
        if not self.tasks:
            raise PlannerFailed("Task graph has no tasks")
        for position, task in enumerate(self.tasks):
            if type(task) not in _TYPE_NAMES:
                raise PlannerFailed(f"Unsupported task at position {position}: {task!r}")
            if not task.id:
                raise PlannerFailed(f"Task at position {position} has no id")
            if task.id in self.by_id:
                raise PlannerFailed(f"Duplicate task id '{task.id}'")

            if isinstance(task, RetrieveTask):
                if task.inputs:
                    raise PlannerFailed(f"Retrieve task '{task.id}' must not have inputs")
                if not task.query.strip():
                    raise PlannerFailed(f"Retrieve task '{task.id}' has an empty query")
                if task.k < 1:
                    raise PlannerFailed(f"Retrieve task '{task.id}' needs k >= 1")
            else:
                if not task.inputs:
                    raise PlannerFailed(f"Task '{task.id}' has no inputs")
                for ref in task.inputs:
                    if ref not in self.by_id:
                        raise PlannerFailed(
                            f"Task '{task.id}' references unknown or later task '{ref}'"
                        )

            if isinstance(task, AnnotateTask):
                unknown = set(task.annotators) - KNOWN_ANNOTATORS
                if unknown:
                    raise PlannerFailed(
                        f"Annotate task '{task.id}' names unknown annotators: {sorted(unknown)}"
                    )
            if isinstance(task, ComposeTask) and task.format not in COMPOSE_FORMATS:
                raise PlannerFailed(f"Compose task '{task.id}' has unknown format '{task.format}'")

            self.by_id[task.id] = task
