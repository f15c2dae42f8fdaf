"""Groundwork ingestion: chunking processor and document sources."""

from groundwork.ingest.processor import IngestionProcessor, backfill_embeddings
from groundwork.ingest.sources import Candidate, DocumentSource, LocalDirectorySource

__all__ = [
    "Candidate",
    "DocumentSource",
    "IngestionProcessor",
    "LocalDirectorySource",
    "backfill_embeddings",
]
