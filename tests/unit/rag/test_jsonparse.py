"""Tests for parse-or-null JSON extraction."""

from __future__ import annotations

import pytest

from groundwork.rag.jsonparse import extract_json_array, extract_json_object


def test_array_inside_prose_and_fences():
    raw = 'Sure! Here it is:\n```json\n[{"i": 0, "rel": 4}]\n```\nHope that helps.'
    assert extract_json_array(raw) == [{"i": 0, "rel": 4}]


def test_object_inside_prose():
    assert extract_json_object('Result: {"action": "POLICY"} done') == {"action": "POLICY"}


@pytest.mark.parametrize("raw", [None, "", "no json here", "[1, 2", "]["])
def test_array_failures_return_none(raw):
    assert extract_json_array(raw) is None


def test_wrong_top_level_type_returns_none():
    assert extract_json_object('["not", "an", "object"]') is None


def test_array_span_is_first_open_to_last_close():
    assert extract_json_array('{"a": [1]} trailing') == [1]


def test_invalid_json_returns_none():
    assert extract_json_object("{'single': 'quotes'}") is None
