"""Tests for the planner and graph repair."""

from __future__ import annotations

import pytest

from groundwork.errors import PlannerFailed
from groundwork.graph.planner import Planner, detect_intents, repair_graph
from groundwork.graph.tasks import AnnotateTask, ComposeTask, RetrieveTask


@pytest.mark.parametrize(
    "query, first",
    [
        ("Posso dire che Hypermix è antiparassitario?", "policy_lookup"),
        ("Is this claim allowed?", "policy_lookup"),
        ("Quando scade il progetto Rimos?", "timeline"),
        ("confronto tra Hypermix e Rimos", "comparison"),
        ("riassumi le note della riunione", "summary"),
        ("documenti su Hypermix", "general_lookup"),
    ],
)
def test_detect_intents(query, first):
    assert detect_intents(query)[0] == first


def test_default_plan_shape():
    graph = Planner(top_k=7).plan("  Posso dire antiparassitario?  ")
    assert [t.id for t in graph] == ["t1", "t2", "t3", "t4", "t5"]
    retrieve = graph.tasks[0]
    assert isinstance(retrieve, RetrieveTask)
    assert retrieve.query == "Posso dire antiparassitario?"
    assert retrieve.k == 7
    assert graph.tasks[1].annotators == ("basic", "claims", "entities")
    assert graph.tasks[2].goal == "policy_lookup"
    assert graph.intents[0] == "policy_lookup"


def test_timeline_plan_composes_timeline():
    graph = Planner().plan("timeline of the project")
    assert isinstance(graph.last, ComposeTask)
    assert graph.last.format == "timeline"
    assert "dates" in graph.tasks[1].annotators


def test_empty_query_fails():
    with pytest.raises(PlannerFailed):
        Planner().plan("   ")


def test_generator_intent_goes_first(fake_generator):
    gen = fake_generator(lambda p: '{"action": "COMPARE"}')
    planner = Planner(gen, "model")
    assert planner.intents("documenti su Hypermix") == ["comparison"]
    assert planner.intents("quando si può dire claim") == ["comparison", "policy_lookup", "timeline"]
    assert gen.calls_matching("Analyse the user's query")


def test_generator_failure_falls_back_to_heuristic(fake_generator):
    assert Planner(fake_generator(fail=True)).intents("Quando?") == ["timeline"]
    assert Planner(fake_generator(lambda p: "???")).intents("Quando?") == ["timeline"]
    assert Planner(fake_generator(lambda p: '{"action": "UNKNOWN"}')).intents("Quando?") == ["timeline"]


# ------------------------------------------------------------------
# repair_graph
# ------------------------------------------------------------------


def test_repair_fills_ids_and_dangling_inputs():
    raw = {
        "tasks": [
            {"type": "retrieve", "criteria": {"raw": "hypermix"}},
            {"type": "annotate", "inputs": ["missing"], "annotators": "claims", "required": "claims"},
            {"type": "reason", "goal": "policy_lookup", "inputs": ["t2", "t9"]},
            {"id": "out", "type": "compose"},
        ]
    }
    graph = repair_graph(raw)
    assert [t.id for t in graph] == ["t1", "t2", "t3", "out"]
    assert graph.tasks[0].query == "hypermix"
    annotate = graph.tasks[1]
    assert isinstance(annotate, AnnotateTask)
    assert annotate.inputs == ("t1",)
    assert annotate.annotators == ("claims",)
    assert annotate.required == ("claims",)
    assert graph.tasks[2].inputs == ("t2",)
    assert graph.tasks[3].inputs == ("t3",)


def test_repair_retrieve_falls_back_to_query():
    graph = repair_graph({"tasks": [{"type": "retrieve", "k": "many"}]}, "fallback query")
    assert graph.tasks[0].query == "fallback query"
    assert graph.tasks[0].k == 12


def test_repair_keeps_intents():
    graph = repair_graph({"intents": ["timeline"], "tasks": [{"type": "retrieve", "query": "q"}]})
    assert graph.intents == ["timeline"]


@pytest.mark.parametrize(
    "raw",
    [
        None,
        {"tasks": "nope"},
        {"tasks": []},
        {"tasks": ["retrieve"]},
        {"tasks": [{"type": "teleport"}]},
        {"tasks": [{"type": "reason"}]},
        {"tasks": [{"type": "retrieve", "query": "q", "id": "a"}, {"type": "retrieve", "query": "q", "id": "a"}]},
        {"tasks": [{"type": "retrieve"}]},
    ],
)
def test_repair_rejects_unrepairable(raw):
    with pytest.raises(PlannerFailed):
        repair_graph(raw)


def test_repair_dangling_compose_input_uses_nearest_prior_task():
    raw = {
        "tasks": [
            {"id": "t1", "type": "retrieve"},
            {"id": "t2", "type": "compose", "inputs": ["tX"]},
        ]
    }
    graph = repair_graph(raw, "hypermix antiparassitario")
    assert graph.tasks[1].inputs == ("t1",)

    with pytest.raises(PlannerFailed, match="no prior task"):
        repair_graph({"tasks": [{"id": "t2", "type": "compose", "inputs": ["tX"]}]}, "q")
