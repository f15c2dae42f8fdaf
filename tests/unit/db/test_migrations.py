"""Tests for the forward-only migration runner."""

from __future__ import annotations

import pytest

import groundwork.db.migrations as mod
from groundwork.db.connection import Database
from groundwork.db.migrations import MIGRATIONS, run_migrations
from groundwork.db.schema import CURRENT_VERSION, initialize


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


def _columns(conn, table: str) -> set[str]:
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0] == CURRENT_VERSION
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


@pytest.mark.parametrize(
    "table",
    [
        "chunks",
        "lexicon",
        "annotations",
        "retrieval_weights",
        "runs",
        "artifacts",
        "feedback",
        "labels",
        "ground_truth",
    ],
)
def test_tables_created(tmp_db, table):
    assert _table_exists(tmp_db, table)


def test_chunks_columns(tmp_db):
    assert _columns(tmp_db, "chunks") == {
        "id",
        "origin_id",
        "text",
        "source",
        "type",
        "path",
        "location",
        "byte_start",
        "byte_end",
        "embedding",
        "updated_at",
    }


def test_chunks_path_index_leads_with_path(tmp_db):
    cols = [r["name"] for r in tmp_db.execute("PRAGMA index_info('idx_chunks_path')")]
    assert cols == ["path", "source"]
    plan = " ".join(
        str(r["detail"])
        for r in tmp_db.execute("EXPLAIN QUERY PLAN SELECT id FROM chunks WHERE path = ?", ("a.txt",))
    )
    assert "idx_chunks_path" in plan


def test_weights_seed_row_sums_to_one(tmp_db):
    row = tmp_db.execute("SELECT w_sim, w_bm25, w_llm FROM retrieval_weights").fetchall()
    assert len(row) == 1
    assert sum(row[0]) == pytest.approx(1.0)


def test_weights_singleton_enforced(tmp_db):
    with pytest.raises(Exception):
        tmp_db.execute(
            "INSERT INTO retrieval_weights (id, w_sim, w_bm25, w_llm) VALUES (2, 1, 0, 0)"
        )


def test_feedback_requires_existing_run(tmp_db):
    with pytest.raises(Exception):
        tmp_db.execute("INSERT INTO feedback (run_id, rating) VALUES ('missing', 5)")


def test_run_migrations_applies_only_pending(tmp_path, monkeypatch):
    """A DB already at version 1 gets only the hypothetical v2 migration."""
    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version "
        "(version INTEGER NOT NULL, applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
    )
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.commit()

    monkeypatch.setattr(
        mod,
        "MIGRATIONS",
        [(1, "SELECT 1;"), (2, "CREATE TABLE IF NOT EXISTS v2_marker (x INTEGER);")],
    )
    run_migrations(conn)
    assert _table_exists(conn, "v2_marker")
    assert not _table_exists(conn, "chunks")
    versions = [r[0] for r in conn.execute("SELECT version FROM schema_version ORDER BY version")]
    assert versions == [1, 2]
    conn.close()


def test_initialize_delegates_to_run_migrations(tmp_path):
    conn = _fresh_conn(tmp_path)
    initialize(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0]
    conn.close()
