"""Task graphs: planning, execution, and the local reasoning stages."""

from groundwork.graph.executor import Executor
from groundwork.graph.planner import Planner, detect_intents, repair_graph
from groundwork.graph.reasoning import ComposedAnswer, Evidence, ReasonResult, ValidationResult
from groundwork.graph.tasks import (
    AnnotateTask,
    ComposeTask,
    ReasonTask,
    RetrieveTask,
    TaskGraph,
    ValidateTask,
)

__all__ = [
    "AnnotateTask",
    "ComposeTask",
    "ComposedAnswer",
    "Evidence",
    "Executor",
    "Planner",
    "ReasonResult",
    "ReasonTask",
    "RetrieveTask",
    "TaskGraph",
    "ValidateTask",
    "ValidationResult",
    "detect_intents",
    "repair_graph",
]
