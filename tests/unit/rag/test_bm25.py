"""Tests for the in-memory BM25 index."""

from __future__ import annotations

import math

import pytest

from groundwork.db.models import Chunk
from groundwork.rag.bm25 import B, K1, LexicalIndex, tokenize


def test_tokenize_lowercases_and_splits():
    assert tokenize("Hypermix: non si può, TASK_12!") == ["hypermix", "non", "si", "può", "task", "12"]


def test_empty_index_and_empty_query():
    index = LexicalIndex()
    assert index.search("anything") == []
    index.add("a", "some text")
    assert index.search("") == []
    assert index.search("!!!") == []


def test_matching_document_ranks_first():
    index = LexicalIndex()
    index.add("a", "budget review for the spring campaign")
    index.add("b", "hypermix cannot be called antiparassitario")
    index.add("c", "meeting notes")
    hits = index.search("hypermix antiparassitario")
    assert hits[0][0] == "b"
    assert [cid for cid, _ in hits] == ["b"]


def test_score_matches_formula_for_single_term():
    index = LexicalIndex()
    index.add("a", "alpha beta")
    index.add("b", "gamma delta epsilon")
    [(cid, score)] = index.search("alpha")
    n, df, tf, dl, avgdl = 2, 1, 1, 2, 2.5
    idf = math.log(1 + (n - df + 0.5) / (df + 0.5))
    expected = idf * tf * (K1 + 1) / (tf + K1 * (1 - B + B * dl / avgdl))
    assert cid == "a"
    assert score == pytest.approx(expected)


def test_top_k_limits_results():
    index = LexicalIndex()
    for i in range(5):
        index.add(f"c{i}", "shared term")
    assert len(index.search("shared", top_k=3)) == 3
    assert index.search("shared", top_k=0) == []


def test_re_adding_replaces_postings():
    index = LexicalIndex()
    index.add("a", "old words")
    index.add("a", "new words")
    assert index.search("old") == []
    assert len(index) == 1


def test_remove():
    index = LexicalIndex()
    index.add("a", "alpha")
    index.add("b", "alpha beta")
    index.remove("a")
    index.remove("missing")
    assert "a" not in index
    assert [cid for cid, _ in index.search("alpha")] == ["b"]


def test_rebuild_from_repository(repo):
    repo.upsert_chunks(
        [Chunk(id="x", text="stored chunk about rimos"), Chunk(id="y", text="another one")]
    )
    index = LexicalIndex()
    index.add("stale", "rimos stale entry")
    assert index.rebuild(repo) == 2
    assert "stale" not in index
    assert [cid for cid, _ in index.search("rimos")] == ["x"]


def test_clear():
    index = LexicalIndex()
    index.add("a", "alpha")
    index.clear()
    assert len(index) == 0
    assert index.search("alpha") == []
