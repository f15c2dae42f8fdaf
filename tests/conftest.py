"""Shared pytest fixtures."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml
from rich.console import Console

from groundwork.config import GroundworkConfig
from groundwork.db.connection import Database
from groundwork.db.repository import Repository
from groundwork.db.schema import initialize


class FakeGenerator:
    """In-process TextGenerator double.

    *responder* maps a prompt to the reply text; *fail* makes every call
    raise. Prompts are recorded in ``calls``.
    """

    def __init__(self, responder: Callable[[str], str] | None = None, fail: bool = False) -> None:
        self.responder = responder
        self.fail = fail
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def generate(self, model: str, prompt: str, max_tokens: int, temperature: float) -> str:
        with self._lock:
            self.calls.append(prompt)
        if self.fail:
            raise RuntimeError("generator unavailable")
        return self.responder(prompt) if self.responder else ""

    def calls_matching(self, marker: str) -> list[str]:
        return [p for p in self.calls if marker in p]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".groundwork.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def fake_generator():
    """Factory: ``fake_generator(responder=None, fail=False)``."""
    return FakeGenerator


@pytest.fixture
def offline_config():
    """Config with no external embedding model and AI suggestions off."""
    cfg = GroundworkConfig()
    cfg.embedding.model = ""
    cfg.expansion.ai_suggestions = False
    return cfg


@pytest.fixture(autouse=True)
def _no_api_keys(monkeypatch):
    """Tests never reach a real provider."""
    for var in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY", "MISTRAL_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("GROUNDWORK_GENERATION_MODEL", raising=False)
    monkeypatch.delenv("GROUNDWORK_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("GROUNDWORK_LOG_LEVEL", raising=False)


@pytest.fixture(autouse=True)
def _reset_groundwork_logger():
    """Undo the CLI's RichHandler setup so caplog sees library records."""
    logger = logging.getLogger("groundwork")
    yield
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


_CLI_MODULES = (
    "evaluate",
    "export",
    "feedback",
    "ingest",
    "lexicon",
    "query",
    "status",
    "weights",
)


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the CLI from *tmp_path* with no global config and hash embeddings."""
    monkeypatch.chdir(tmp_path)
    # Wide consoles keep table cells on one line
    for name in _CLI_MODULES:
        monkeypatch.setattr(f"groundwork.cli.{name}.console", Console(width=200))
    monkeypatch.setattr("groundwork.cli.context.err_console", Console(stderr=True, width=200))
    monkeypatch.setattr("groundwork.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    (tmp_path / "groundwork.yaml").write_text(
        yaml.dump(
            {
                "embedding": {"model": ""},
                "expansion": {"ai_suggestions": False},
                "logging": {"level": "ERROR"},
            }
        ),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def docs(workdir: Path) -> Path:
    root = workdir / "docs"
    (root / "policies").mkdir(parents=True)
    (root / "policies" / "hypermix.txt").write_text(
        "Hypermix: non si può definire antiparassitario.\n\nUsare il claim integratore.",
        encoding="utf-8",
    )
    (root / "notes.md").write_text(
        "Riunione Rimos del 2024-03-12 sul budget della campagna.", encoding="utf-8"
    )
    return root
