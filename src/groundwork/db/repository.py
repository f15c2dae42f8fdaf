"""Repository pattern for all groundwork database operations.

Single interface for: chunks, lexicon, annotation cache, retrieval weights,
runs + artifacts, feedback, human labels, and ground truth. The core only
depends on these read / upsert / delete-by-filter methods.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterable, Iterator

from groundwork.db.models import (
    DEFAULT_WEIGHTS,
    Chunk,
    Feedback,
    GroundTruth,
    Label,
    LexiconTerm,
    RetrievalWeights,
    Run,
)
from groundwork.db.vectors import decode_embedding, encode_embedding

_CHUNK_COLUMNS = (
    "id, origin_id, text, source, type, path, location, "
    "byte_start, byte_end, embedding, updated_at"
)


class Repository:
    """Data access layer for all groundwork entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller and
    must be closed after use. Every statement runs under one re-entrant lock so
    the connection can be shared by concurrent queries.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see groundwork.db.schema.initialize).
        """
        self._conn = conn
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def upsert_chunks(self, chunks: Iterable[Chunk]) -> int:
        """Insert or replace chunks by id. Returns the number of rows written.

        Re-ingesting identical content at identical offsets produces the same
        id and therefore replaces the row instead of duplicating it. An
        existing embedding is kept when the incoming chunk carries none.
        """
        rows = [
            (
                c.id,
                c.origin_id,
                c.text,
                c.source,
                c.type,
                c.path,
                c.location,
                c.byte_start,
                c.byte_end,
                encode_embedding(c.embedding),
            )
            for c in chunks
        ]
        if not rows:
            return 0
        with self._lock:
            self._conn.executemany(
                """
                INSERT INTO chunks (id, origin_id, text, source, type, path, location,
                                    byte_start, byte_end, embedding)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    origin_id  = excluded.origin_id,
                    text       = excluded.text,
                    source     = excluded.source,
                    type       = excluded.type,
                    path       = excluded.path,
                    location   = excluded.location,
                    byte_start = excluded.byte_start,
                    byte_end   = excluded.byte_end,
                    embedding  = COALESCE(excluded.embedding, chunks.embedding),
                    updated_at = datetime('now')
                """,
                rows,
            )
            self._conn.commit()
        return len(rows)

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        """Return a chunk by id, or None if not found."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id = ?", (chunk_id,)
            ).fetchone()
        return _row_to_chunk(row) if row else None

    def get_chunks(self, chunk_ids: list[str]) -> dict[str, Chunk]:
        """Return ``{id: Chunk}`` for every id that exists (missing ids are skipped)."""
        if not chunk_ids:
            return {}
        found: dict[str, Chunk] = {}
        # Stay well below SQLite's bound-parameter limit.
        for start in range(0, len(chunk_ids), 500):
            batch = chunk_ids[start : start + 500]
            placeholders = ",".join("?" * len(batch))
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})",
                    batch,
                ).fetchall()
            for row in rows:
                found[row["id"]] = _row_to_chunk(row)
        return found

    def iter_chunk_texts(self) -> Iterator[tuple[str, str]]:
        """Yield ``(id, text)`` for every stored chunk in insertion order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, text FROM chunks ORDER BY rowid"
            ).fetchall()
        for row in rows:
            yield row["id"], row["text"]

    def delete_chunks_by_path(self, path: str, source: str | None = None) -> list[str]:
        """Delete all chunks stored for *path* (optionally scoped to *source*).

        Returns the ids that were removed so callers can evict them from
        in-memory indices.
        """
        sql_filter = "path = ?"
        params: list[str] = [path]
        if source is not None:
            sql_filter += " AND source = ?"
            params.append(source)
        with self._lock:
            ids = [
                r[0]
                for r in self._conn.execute(
                    f"SELECT id FROM chunks WHERE {sql_filter}", params
                ).fetchall()
            ]
            if ids:
                self._conn.execute(f"DELETE FROM chunks WHERE {sql_filter}", params)
                self._conn.commit()
        return ids

    def count_chunks(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def chunks_missing_embedding(self, limit: int = 500) -> list[Chunk]:
        """Return up to *limit* chunks with no stored embedding."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE embedding IS NULL "
                "ORDER BY rowid LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def set_chunk_embedding(self, chunk_id: str, embedding: list[float]) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE chunks SET embedding = ?, updated_at = datetime('now') WHERE id = ?",
                (encode_embedding(embedding), chunk_id),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Lexicon
    # ------------------------------------------------------------------

    def upsert_lexicon_term(
        self,
        term: str,
        type: str = "other",
        frequency: int = 1,
        sources: Iterable[str] = (),
    ) -> None:
        """Insert *term* or add *frequency* to its existing count.

        Sources are merged into the stored comma-separated set.
        """
        incoming = sorted({s for s in sources if s})
        with self._lock:
            row = self._conn.execute(
                "SELECT sources FROM lexicon WHERE term = ?", (term,)
            ).fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO lexicon (term, type, frequency, sources) VALUES (?, ?, ?, ?)",
                    (term, type, frequency, ",".join(incoming)),
                )
            else:
                merged = sorted({s for s in row["sources"].split(",") if s} | set(incoming))
                self._conn.execute(
                    """
                    UPDATE lexicon
                    SET frequency = frequency + ?, sources = ?, last_seen = datetime('now')
                    WHERE term = ?
                    """,
                    (frequency, ",".join(merged), term),
                )
            self._conn.commit()

    def existing_terms(self, candidates: list[str]) -> set[str]:
        """Return the subset of *candidates* present in the lexicon."""
        if not candidates:
            return set()
        placeholders = ",".join("?" * len(candidates))
        with self._lock:
            rows = self._conn.execute(
                f"SELECT term FROM lexicon WHERE term IN ({placeholders})", candidates
            ).fetchall()
        return {r["term"] for r in rows}

    def list_lexicon(self, limit: int = 100) -> list[LexiconTerm]:
        """Return lexicon terms ordered by frequency (highest first)."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT term, type, frequency, embedding, sources, last_seen FROM lexicon "
                "ORDER BY frequency DESC, term LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_term(r) for r in rows]

    def terms_missing_embedding(self, limit: int = 50) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT term FROM lexicon WHERE embedding IS NULL ORDER BY term LIMIT ?",
                (limit,),
            ).fetchall()
        return [r["term"] for r in rows]

    def set_term_embedding(self, term: str, embedding: list[float]) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE lexicon SET embedding = ? WHERE term = ?",
                (encode_embedding(embedding), term),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Annotation cache
    # ------------------------------------------------------------------

    def get_annotations(self, annotator: str, chunk_ids: list[str]) -> dict[str, object]:
        """Return cached payloads ``{chunk_id: payload}`` for *annotator*.

        Rows whose JSON no longer parses are treated as missing.
        """
        if not chunk_ids:
            return {}
        placeholders = ",".join("?" * len(chunk_ids))
        with self._lock:
            rows = self._conn.execute(
                f"SELECT chunk_id, data FROM annotations "
                f"WHERE annotator = ? AND chunk_id IN ({placeholders})",
                [annotator, *chunk_ids],
            ).fetchall()
        cached: dict[str, object] = {}
        for row in rows:
            try:
                cached[row["chunk_id"]] = json.loads(row["data"])
            except json.JSONDecodeError:
                continue
        return cached

    def put_annotations(self, annotator: str, payloads: dict[str, object]) -> None:
        """Insert-or-replace annotation rows for *annotator*."""
        if not payloads:
            return
        with self._lock:
            self._conn.executemany(
                """
                INSERT INTO annotations (chunk_id, annotator, data) VALUES (?, ?, ?)
                ON CONFLICT(chunk_id, annotator) DO UPDATE SET
                    data = excluded.data,
                    updated_at = datetime('now')
                """,
                [(cid, annotator, json.dumps(p)) for cid, p in payloads.items()],
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Retrieval weights
    # ------------------------------------------------------------------

    def get_weights(self) -> RetrievalWeights:
        """Return the current weights singleton (seed values if the row is absent)."""
        with self._lock:
            row = self._conn.execute(
                "SELECT w_sim, w_bm25, w_llm, updated_at FROM retrieval_weights WHERE id = 1"
            ).fetchone()
        if row is None:
            return DEFAULT_WEIGHTS
        return RetrievalWeights(
            w_sim=row["w_sim"],
            w_bm25=row["w_bm25"],
            w_llm=row["w_llm"],
            updated_at=row["updated_at"],
        )

    def save_weights(self, weights: RetrievalWeights) -> RetrievalWeights:
        """Normalize *weights* and replace the singleton row in one statement."""
        norm = weights.normalized()
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO retrieval_weights (id, w_sim, w_bm25, w_llm) VALUES (1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    w_sim = excluded.w_sim,
                    w_bm25 = excluded.w_bm25,
                    w_llm = excluded.w_llm,
                    updated_at = datetime('now')
                """,
                (norm.w_sim, norm.w_bm25, norm.w_llm),
            )
            self._conn.commit()
        return self.get_weights()

    # ------------------------------------------------------------------
    # Runs + artifacts
    # ------------------------------------------------------------------

    def add_run(self, run: Run) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO runs (id, query, intents, graph_json, conclusions_json,
                                  support_count, valid, latency_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.id,
                    run.query,
                    ",".join(run.intents),
                    json.dumps(run.graph),
                    json.dumps(run.conclusions),
                    run.support_count,
                    1 if run.valid else 0,
                    run.latency_ms,
                ),
            )
            self._conn.commit()

    def get_run(self, run_id: str) -> Run | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT id, query, intents, graph_json, conclusions_json, support_count, "
                "valid, latency_ms, created_at FROM runs WHERE id = ?",
                (run_id,),
            ).fetchone()
        return _row_to_run(row) if row else None

    def count_runs(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM runs").fetchone()[0]

    def latest_run_id(self, query: str) -> str | None:
        """Return the id of the most recent run for *query* (exact match)."""
        with self._lock:
            row = self._conn.execute(
                "SELECT id FROM runs WHERE query = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (query,),
            ).fetchone()
        return row["id"] if row else None

    def add_artifact(self, run_id: str | None, stage: str, payload: object) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO artifacts (run_id, stage, payload) VALUES (?, ?, ?)",
                (run_id, stage, json.dumps(payload)),
            )
            self._conn.commit()

    def list_artifacts(self, run_id: str) -> list[dict]:
        """Return ``[{stage, payload, created_at}]`` for *run_id* in write order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT stage, payload, created_at FROM artifacts WHERE run_id = ? ORDER BY id",
                (run_id,),
            ).fetchall()
        return [
            {"stage": r["stage"], "payload": json.loads(r["payload"]), "created_at": r["created_at"]}
            for r in rows
        ]

    def first_retrieval_payload(self, run_id: str) -> list[dict] | None:
        """Return the payload of the first ``retrieve:*`` artifact of *run_id*."""
        with self._lock:
            row = self._conn.execute(
                "SELECT payload FROM artifacts WHERE run_id = ? AND stage LIKE 'retrieve:%' "
                "ORDER BY id LIMIT 1",
                (run_id,),
            ).fetchone()
        if row is None:
            return None
        payload = json.loads(row["payload"])
        return payload if isinstance(payload, list) else None

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def add_feedback(self, feedback: Feedback) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO feedback (run_id, rating, comment) VALUES (?, ?, ?)",
                (feedback.run_id, feedback.rating, feedback.comment),
            )
            self._conn.commit()

    def list_feedback(self, run_id: str) -> list[Feedback]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT run_id, rating, comment, created_at FROM feedback "
                "WHERE run_id = ? ORDER BY created_at DESC, id DESC",
                (run_id,),
            ).fetchall()
        return [
            Feedback(
                run_id=r["run_id"],
                rating=r["rating"],
                comment=r["comment"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def feedback_with_retrieval(self, limit: int = 30) -> list[tuple[str, int, list[dict]]]:
        """Return ``(run_id, rating, retrieve_payload)`` for the newest feedback rows.

        Only runs that have both feedback and a ``retrieve:*`` artifact are
        returned; the first retrieve artifact of each run is used.
        """
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT f.run_id AS run_id, f.rating AS rating, a.payload AS payload
                FROM feedback f
                JOIN runs r ON r.id = f.run_id
                JOIN artifacts a ON a.id = (
                    SELECT MIN(id) FROM artifacts
                    WHERE run_id = f.run_id AND stage LIKE 'retrieve:%'
                )
                ORDER BY f.created_at DESC, f.id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        out: list[tuple[str, int, list[dict]]] = []
        for row in rows:
            try:
                payload = json.loads(row["payload"])
            except json.JSONDecodeError:
                continue
            if isinstance(payload, list):
                out.append((row["run_id"], row["rating"], payload))
        return out

    def count_feedback(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM feedback").fetchone()[0]

    # ------------------------------------------------------------------
    # Human labels
    # ------------------------------------------------------------------

    def add_label(self, label: Label) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO labels (chunk_id, label_type, label_value, source) VALUES (?, ?, ?, ?)",
                (label.chunk_id, label.label_type, label.label_value, label.source),
            )
            self._conn.commit()

    def list_labels(self, chunk_id: str) -> list[Label]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT chunk_id, label_type, label_value, source, created_at FROM labels "
                "WHERE chunk_id = ? ORDER BY created_at DESC, id DESC",
                (chunk_id,),
            ).fetchall()
        return [
            Label(
                chunk_id=r["chunk_id"],
                label_type=r["label_type"],
                label_value=r["label_value"],
                source=r["source"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def entity_label_candidates(self, min_freq: int = 1) -> list[tuple[str, int]]:
        """Return ``(value, count)`` for entity labels not yet in the lexicon."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT lower(label_value) AS term, COUNT(*) AS freq
                FROM labels
                WHERE label_type = 'entity'
                  AND lower(label_value) NOT IN (SELECT term FROM lexicon)
                GROUP BY lower(label_value)
                HAVING COUNT(*) >= ?
                ORDER BY freq DESC, term
                LIMIT 200
                """,
                (min_freq,),
            ).fetchall()
        return [(r["term"], r["freq"]) for r in rows]

    # ------------------------------------------------------------------
    # Ground truth
    # ------------------------------------------------------------------

    def add_ground_truth(self, item: GroundTruth) -> int:
        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO ground_truth (query, chunk_id, relevant) VALUES (?, ?, ?)",
                (item.query.strip(), item.chunk_id, 1 if item.relevant else 0),
            )
            self._conn.commit()
            return cur.lastrowid

    def list_ground_truth(self, query: str | None = None) -> list[GroundTruth]:
        sql = "SELECT id, query, chunk_id, relevant, created_at FROM ground_truth"
        params: tuple = ()
        if query is not None:
            sql += " WHERE query = ?"
            params = (query,)
        with self._lock:
            rows = self._conn.execute(sql + " ORDER BY id", params).fetchall()
        return [
            GroundTruth(
                id=r["id"],
                query=r["query"],
                chunk_id=r["chunk_id"],
                relevant=bool(r["relevant"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def delete_ground_truth(self, item_id: int) -> int:
        with self._lock:
            cur = self._conn.execute("DELETE FROM ground_truth WHERE id = ?", (item_id,))
            self._conn.commit()
            return cur.rowcount


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        origin_id=row["origin_id"],
        text=row["text"],
        source=row["source"],
        type=row["type"],
        path=row["path"],
        location=row["location"],
        byte_start=row["byte_start"],
        byte_end=row["byte_end"],
        embedding=decode_embedding(row["embedding"]),
        updated_at=row["updated_at"],
    )


def _row_to_term(row: sqlite3.Row) -> LexiconTerm:
    return LexiconTerm(
        term=row["term"],
        type=row["type"],
        frequency=row["frequency"],
        sources=[s for s in row["sources"].split(",") if s],
        embedding=decode_embedding(row["embedding"]),
        last_seen=row["last_seen"],
    )


def _row_to_run(row: sqlite3.Row) -> Run:
    return Run(
        id=row["id"],
        query=row["query"],
        intents=[i for i in row["intents"].split(",") if i],
        graph=json.loads(row["graph_json"]),
        conclusions=json.loads(row["conclusions_json"]),
        support_count=row["support_count"],
        valid=bool(row["valid"]),
        latency_ms=row["latency_ms"],
        created_at=row["created_at"],
    )
