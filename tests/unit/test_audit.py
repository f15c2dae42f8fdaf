"""Tests for the run audit export."""

from __future__ import annotations

import json
import zipfile

import pytest

from groundwork.audit import export_run
from groundwork.db.models import Chunk, Feedback, Run
from groundwork.errors import UnknownRun


@pytest.fixture
def run(repo):
    repo.upsert_chunks(
        [
            Chunk(id="c1", text="Hypermix policy", path="p.txt", embedding=[0.1, 0.2]),
            Chunk(id="c2", text="Rimos notes", path="n.txt"),
        ]
    )
    repo.add_run(Run(id="r1", query="hypermix", intents=["policy_lookup"], valid=True))
    repo.add_artifact("r1", "planner", {"tasks": []})
    repo.add_artifact("r1", "retrieve:t1", [{"id": "c1"}, {"id": "c2"}, {"id": "gone"}, {"id": "c1"}])
    repo.add_feedback(Feedback(run_id="r1", rating=4, comment="ok"))
    return "r1"


def _read(archive, name):
    with zipfile.ZipFile(archive) as zf:
        return json.loads(zf.read(name))


def test_export_to_directory(repo, run, tmp_path):
    archive = export_run(repo, run, tmp_path)
    assert archive == tmp_path / "run_r1.zip"
    with zipfile.ZipFile(archive) as zf:
        assert sorted(zf.namelist()) == ["artifacts.json", "evidence.json", "feedback.json", "run.json"]

    assert _read(archive, "run.json")["intents"] == ["policy_lookup"]
    assert [a["stage"] for a in _read(archive, "artifacts.json")] == ["planner", "retrieve:t1"]
    assert _read(archive, "feedback.json")[0]["comment"] == "ok"


def test_evidence_is_deduplicated_without_embeddings(repo, run, tmp_path):
    evidence = _read(export_run(repo, run, tmp_path), "evidence.json")
    assert [e["id"] for e in evidence] == ["c1", "c2"]
    assert "embedding" not in evidence[0]
    assert evidence[0]["text"] == "Hypermix policy"


def test_export_to_file_path_creates_parents(repo, run, tmp_path):
    target = tmp_path / "out" / "audit.zip"
    assert export_run(repo, run, target) == target
    assert target.exists()


def test_unknown_run(repo, tmp_path):
    with pytest.raises(UnknownRun):
        export_run(repo, "missing", tmp_path)
