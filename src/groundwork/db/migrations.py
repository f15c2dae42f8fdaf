"""Forward-only migration runner for the groundwork database schema."""

from __future__ import annotations

import sqlite3

from groundwork.db.models import DEFAULT_WEIGHTS

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = f"""
CREATE TABLE IF NOT EXISTS chunks (
    id              TEXT PRIMARY KEY,
    origin_id       TEXT NOT NULL DEFAULT '',
    text            TEXT NOT NULL,
    source          TEXT NOT NULL DEFAULT '',
    type            TEXT NOT NULL DEFAULT '',
    path            TEXT NOT NULL DEFAULT '',
    location        TEXT NOT NULL DEFAULT '',
    byte_start      INTEGER NOT NULL DEFAULT 0,
    byte_end        INTEGER NOT NULL DEFAULT 0,
    embedding       BLOB,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(source, path);

CREATE TABLE IF NOT EXISTS lexicon (
    term            TEXT PRIMARY KEY,
    type            TEXT NOT NULL DEFAULT 'other',
    frequency       INTEGER NOT NULL DEFAULT 1,
    embedding       BLOB,
    sources         TEXT NOT NULL DEFAULT '',
    last_seen       DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS annotations (
    chunk_id        TEXT NOT NULL,
    annotator       TEXT NOT NULL,
    data            TEXT NOT NULL,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (chunk_id, annotator)
);

CREATE TABLE IF NOT EXISTS retrieval_weights (
    id              INTEGER PRIMARY KEY CHECK (id = 1),
    w_sim           REAL NOT NULL,
    w_bm25          REAL NOT NULL,
    w_llm           REAL NOT NULL,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

INSERT OR IGNORE INTO retrieval_weights (id, w_sim, w_bm25, w_llm)
VALUES (1, {DEFAULT_WEIGHTS.w_sim!r}, {DEFAULT_WEIGHTS.w_bm25!r}, {DEFAULT_WEIGHTS.w_llm!r});

CREATE TABLE IF NOT EXISTS runs (
    id              TEXT PRIMARY KEY,
    query           TEXT NOT NULL,
    intents         TEXT NOT NULL DEFAULT '',
    graph_json      TEXT NOT NULL DEFAULT '{{}}',
    conclusions_json TEXT NOT NULL DEFAULT '[]',
    support_count   INTEGER NOT NULL DEFAULT 0,
    valid           INTEGER NOT NULL DEFAULT 0,
    latency_ms      INTEGER NOT NULL DEFAULT 0,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS artifacts (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id          TEXT,
    stage           TEXT NOT NULL,
    payload         TEXT NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_artifacts_run ON artifacts(run_id);

CREATE TABLE IF NOT EXISTS feedback (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id          TEXT NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
    rating          INTEGER NOT NULL,
    comment         TEXT,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS labels (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    chunk_id        TEXT NOT NULL,
    label_type      TEXT NOT NULL,
    label_value     TEXT NOT NULL,
    source          TEXT NOT NULL DEFAULT 'human',
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS ground_truth (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    query           TEXT NOT NULL,
    chunk_id        TEXT NOT NULL,
    relevant        INTEGER NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Chunk purges filter on path alone; lead the index with it.
_V2_SQL = """
DROP INDEX IF EXISTS idx_chunks_path;
CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(path, source);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
