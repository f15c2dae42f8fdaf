"""Groundwork database layer."""

from groundwork.db.connection import Database
from groundwork.db.migrations import MIGRATIONS, run_migrations
from groundwork.db.repository import Repository
from groundwork.db.schema import initialize
from groundwork.db.vectors import decode_embedding, encode_embedding

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "decode_embedding",
    "encode_embedding",
]
