"""groundwork: hybrid retrieval and task-graph reasoning over a document corpus."""

__version__ = "0.1.0"
