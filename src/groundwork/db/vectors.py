"""Embedding (de)serialization for BLOB columns.

Vectors are stored in sqlite-vec's compact float32 format so they can be
handed to vec functions without conversion.
"""

from __future__ import annotations

import struct

import sqlite_vec


def encode_embedding(embedding: list[float] | None) -> bytes | None:
    """Serialize *embedding* to a float32 BLOB (None passes through)."""
    if embedding is None:
        return None
    return sqlite_vec.serialize_float32([float(v) for v in embedding])


def decode_embedding(blob: bytes | None) -> list[float] | None:
    """Inverse of encode_embedding(). Empty or missing blobs decode to None."""
    if not blob:
        return None
    count = len(blob) // 4
    return list(struct.unpack(f"{count}f", blob[: count * 4]))
