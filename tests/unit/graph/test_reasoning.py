"""Tests for the reason, validate, and compose stages."""

from __future__ import annotations

import pytest

from groundwork.db.models import Chunk
from groundwork.graph.reasoning import (
    INSUFFICIENT_EVIDENCE_TEXT,
    Evidence,
    ReasonResult,
    cluster_timeline,
    compose,
    first_sentence,
    reason,
    validate,
)
from groundwork.rag.retriever import ScoredChunk


def _ev(cid: str, text: str, labels=(), entities=(), byte_start: int = 0) -> Evidence:
    chunk = Chunk(id=cid, text=text, path=f"{cid}.txt", byte_start=byte_start, byte_end=byte_start + len(text.encode()))
    return Evidence(chunk=chunk, labels=list(labels), entities=list(entities))


_HYPERMIX = {"value": "Hypermix", "type": "product", "canonical": "hypermix"}


# ------------------------------------------------------------------
# reason
# ------------------------------------------------------------------


def test_first_sentence():
    assert first_sentence("One  two.\nThree four. Five") == "One two."
    assert first_sentence("x" * 300, limit=10) == "x" * 10


def test_policy_lookup_lists_prohibitions_first():
    evidence = [
        _ev("p", "Hypermix may be called a supplement. More text.", labels=["permission"]),
        _ev("d", "Hypermix cannot be called antiparassitario.", labels=["prohibition"]),
        _ev("n", "Unrelated note."),
    ]
    result = reason(evidence, "policy_lookup")
    assert result.conclusions == [
        "Prohibited: Hypermix cannot be called antiparassitario.",
        "Permitted: Hypermix may be called a supplement.",
    ]
    assert [s["id"] for s in result.support] == ["d", "p"]
    assert result.offsets["d"] == [0, len("Hypermix cannot be called antiparassitario.")]


def test_policy_without_labels_falls_back_to_summary():
    evidence = [_ev(str(i), f"Sentence {i}. Tail.") for i in range(5)]
    result = reason(evidence, "policy_lookup")
    assert result.conclusions == ["Sentence 0.", "Sentence 1.", "Sentence 2."]


def test_timeline_orders_by_date():
    evidence = [
        _ev("b", "Review on 2024-05-10."),
        _ev("a", "Kickoff on 02/05/2024."),
        _ev("x", "No date here."),
    ]
    result = reason(evidence, "timeline")
    assert result.conclusions == ["2024-05-02: Kickoff on 02/05/2024.", "2024-05-10: Review on 2024-05-10."]
    assert result.support[0]["date"] == "2024-05-02"


def test_timeline_prefers_annotated_dates():
    ev = _ev("a", "Kickoff soon.")
    ev.dates = [{"raw": "1 June 2024", "norm": "2024-06-01"}]
    assert reason([ev], "timeline").conclusions == ["2024-06-01: Kickoff soon."]


def test_comparison_groups_by_canonical_entity():
    rimos = {"value": "Rimos", "type": "organization", "canonical": "rimos"}
    evidence = [
        _ev("1", "Hypermix launch.", entities=[_HYPERMIX]),
        _ev("2", "Hypermix pricing.", entities=[_HYPERMIX, rimos]),
    ]
    result = reason(evidence, "comparison")
    assert result.conclusions[0] == "hypermix (2 sources): Hypermix launch."
    assert result.conclusions[1] == "rimos (1 sources): Hypermix pricing."


def test_reason_without_evidence():
    result = reason([], "general_lookup")
    assert result.conclusions == [] and result.support == []


def test_evidence_from_scored():
    scored = ScoredChunk(chunk=Chunk(id="c", text="t"), score=0.7)
    ev = Evidence.from_scored(scored)
    assert ev.id == "c" and ev.score == 0.7 and ev.labels == []


# ------------------------------------------------------------------
# validate
# ------------------------------------------------------------------


def test_validate_missing_support():
    checked = validate(ReasonResult(goal="general_lookup"))
    assert not checked.valid
    assert checked.issues == ["missing_support"]


def test_validate_weak_evidence():
    result = ReasonResult(goal="g", conclusions=["x"], support=[{"id": "a", "snippet": "ok"}])
    assert validate(result).issues == ["weak_evidence"]


def test_validate_conflicting_conclusions():
    result = reason(
        [
            _ev("d", "Claim X is prohibited.", labels=["prohibition"]),
            _ev("p", "Claim X is allowed.", labels=["permission"]),
        ],
        "policy_lookup",
    )
    assert "conflict_detected" in validate(result).issues


def test_validate_entity_conflict():
    evidence = [
        _ev("d", "Hypermix cannot be called antiparassitario.", ["prohibition"], [_HYPERMIX]),
        _ev("p", "Hypermix can be called supplement.", ["permission"], [_HYPERMIX]),
    ]
    checked = validate(reason(evidence, "general_lookup"), evidence)
    assert "entity_conflict" in checked.issues
    assert checked.conflict_details == [
        {"product": "hypermix", "prohibition_examples": ["d"], "permission_examples": ["p"]}
    ]


def test_validate_appends_upstream_issues_once():
    result = reason([_ev("a", "A perfectly fine sentence.")], "general_lookup")
    checked = validate(result, [], ["annotation_incomplete:entities", "annotation_incomplete:entities"])
    assert checked.issues == ["annotation_incomplete:entities"]
    assert not checked.valid


def test_validate_clean_result_is_valid():
    result = reason([_ev("a", "A perfectly fine sentence.")], "general_lookup")
    checked = validate(result)
    assert checked.valid and checked.issues == []


# ------------------------------------------------------------------
# compose
# ------------------------------------------------------------------


def test_compose_insufficient_evidence():
    answer = compose(validate(ReasonResult(goal="policy_lookup")))
    assert answer.text == INSUFFICIENT_EVIDENCE_TEXT
    assert not answer.valid
    assert answer.issues == ["missing_support"]


def test_compose_cites_sources_and_scores_confidence():
    evidence = [_ev("d", "Hypermix cannot be called antiparassitario.", ["prohibition"])]
    answer = compose(validate(reason(evidence, "policy_lookup")))
    assert answer.valid
    assert answer.text.endswith("Sources:\n[S1] Hypermix cannot be called antiparassitario.")
    assert answer.conclusions[0]["confidence"] == pytest.approx(0.8)
    assert answer.citations[0]["label"] == "S1"
    assert answer.citations[0]["chunk_id"] == "d"
    assert "hypermix" in answer.citations[0]["tokens"]


def test_grounding_spans_are_utf8_byte_offsets():
    text = "Perché Hypermix è vietato."
    ev = _ev("u", text, byte_start=100)
    answer = compose(reason([ev], "general_lookup"))
    spans = answer.grounding_spans[0]["evidence_spans"]
    span = next(s for s in spans if s["token"] == "hypermix")
    assert span["start"] == text.index("Hypermix")
    assert span["absolute_start"] == 100 + len("Perché ".encode("utf-8"))
    assert span["absolute_end"] == span["absolute_start"] + len("Hypermix")


def test_compose_list_format():
    answer = compose(reason([_ev("a", "First one."), _ev("b", "Second one.")], "general_lookup"), "list")
    assert answer.text.startswith("- First one.\n- Second one.")


def test_compose_from_raw_scored_chunks():
    scored = [ScoredChunk(chunk=Chunk(id="c", text="Raw evidence sentence."), score=1.0)]
    answer = compose(scored)
    assert answer.conclusions[0]["text"] == "Raw evidence sentence."
    assert answer.valid


def test_compose_timeline_format_clusters():
    evidence = [
        _ev("a", "Kickoff 2024-05-01."),
        _ev("b", "Brief 2024-05-02."),
        _ev("c", "Launch 2024-06-15."),
    ]
    answer = compose(reason(evidence, "timeline"), "timeline")
    assert answer.timeline == [
        {"range": "2024-05-01..2024-05-02", "count": 2, "snippets": ["Kickoff 2024-05-01.", "Brief 2024-05-02."]},
        {"range": "2024-06-15", "count": 1, "snippets": ["Launch 2024-06-15."]},
    ]


def test_cluster_timeline_window_is_two_days():
    support = [
        {"snippet": "a", "date": "2024-01-01"},
        {"snippet": "b", "date": "2024-01-03"},
        {"snippet": "c", "date": "2024-01-06"},
        {"snippet": "no date"},
    ]
    assert [g["range"] for g in cluster_timeline(support)] == ["2024-01-01..2024-01-03", "2024-01-06"]
    assert cluster_timeline([]) == []
