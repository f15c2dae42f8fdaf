"""Tests for the basic, claims, and entities annotators."""

from __future__ import annotations

import json

from groundwork.annotate import build_annotators
from groundwork.annotate.basic import BasicAnnotator
from groundwork.annotate.claims import ClaimsAnnotator
from groundwork.annotate.entities import EntitiesAnnotator, extract_candidates
from groundwork.db.models import Chunk


def test_basic_flags_entity_references():
    annotator = BasicAnnotator()
    assert annotator.annotate_local(Chunk(id="a", text="Il prodotto Hypermix")) == ["entity_ref"]
    assert annotator.annotate_local(Chunk(id="b", text="weather report")) == []


def test_registry_keys():
    registry = build_annotators()
    assert set(registry) == {"basic", "dates", "claims", "entities"}
    assert registry["claims"].key == "claims_v1"
    assert registry["claims"].full_coverage
    assert not registry["basic"].remote


def test_claims_prompt_truncates_text():
    annotator = ClaimsAnnotator(payload_chars=5)
    prompt = annotator.build_prompt([Chunk(id="a", text="abcdefghij")])
    assert "claim_statement" in prompt
    assert json.loads(prompt.split("\n", 1)[1]) == [{"i": 0, "text": "abcde"}]


def test_claims_parse_drops_unknown_labels_and_bad_indices():
    items = [
        {"i": 0, "labels": ["prohibition", "made_up", "prohibition"]},
        {"i": 1, "labels": []},
        {"i": 7, "labels": ["permission"]},
        {"i": "2", "labels": ["permission"]},
        "junk",
    ]
    assert ClaimsAnnotator().parse_response(items, 3) == {0: ["prohibition"], 1: []}


def test_entity_candidates_task_codes_first():
    assert extract_candidates("Ask Mario about TASK-1234 for Hypermix") == [
        "TASK-1234",
        "Ask",
        "Mario",
        "TASK",
        "Hypermix",
    ]


def test_entities_payload_and_parse():
    annotator = EntitiesAnnotator()
    item = annotator.payload_item(0, Chunk(id="a", text="Rimos and Hypermix"))
    assert item["cand"] == ["Rimos", "Hypermix"]

    parsed = annotator.parse_response(
        [
            {
                "index": 0,
                "entities": [
                    {"value": " Hypermix ", "type": "product", "canonical": "hypermix"},
                    {"value": "Rimos", "type": "weird"},
                    {"value": ""},
                ],
            },
            {"i": 1, "entities": "nope"},
        ],
        2,
    )
    assert parsed == {
        0: [
            {"value": "Hypermix", "type": "product", "canonical": "hypermix"},
            {"value": "Rimos", "type": "other", "canonical": "rimos"},
        ]
    }
