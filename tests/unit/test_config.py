"""Tests for the groundwork config loader."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from groundwork.config import DEFAULT_SEED_GROUPS, ConfigError, GroundworkConfig, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _missing(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent" / "config.yaml"


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    cfg = load_config(project_dir=tmp_path, global_config_path=_missing(tmp_path))

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.fallback_dims == 128
    assert cfg.retrieval.top_k == 12
    assert cfg.retrieval.lexical_candidates == 80
    assert cfg.retrieval.expansion_boost == pytest.approx(0.05)
    assert cfg.retrieval.rerank_max_candidates == 30
    assert cfg.ingest.paragraph_ceiling == 1_400
    assert cfg.ingest.segment_size == 1_000
    assert cfg.learning.feedback_window == 30
    assert cfg.logging.level == "WARNING"
    assert cfg.expansion.seed_groups == [list(g) for g in DEFAULT_SEED_GROUPS]


def test_default_instances_do_not_share_seed_groups() -> None:
    a, b = GroundworkConfig(), GroundworkConfig()
    a.expansion.seed_groups.append(["x"])
    assert ["x"] not in b.expansion.seed_groups


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_config_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"generation": {"model": "openai/gpt-4o"}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.generation.model == "openai/gpt-4o"
    # Stage models follow the main model unless set
    assert cfg.generation.reranker_model == "openai/gpt-4o"
    assert cfg.embedding.model == "openai/text-embedding-3-small"


def test_global_empty_file(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")
    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.retrieval.top_k == 12


def test_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"retrieval": {"top_k": 5, "rerank": False}})
    _write_yaml(tmp_path / "groundwork.yaml", {"retrieval": {"top_k": 20}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.retrieval.top_k == 20
    assert cfg.retrieval.rerank is False


def test_project_sections(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "groundwork.yaml",
        {
            "embedding": {"model": ""},
            "ingest": {"paragraph_ceiling": 500, "segment_size": 200, "source": "notion"},
            "annotation": {"claims_chars": 300},
            "learning": {"feedback_window": 10},
            "expansion": {"ai_suggestions": False, "seed_groups": [["Budget", "Costi"]]},
        },
    )
    cfg = load_config(project_dir=tmp_path, global_config_path=_missing(tmp_path))
    assert cfg.embedding.model == ""
    assert cfg.ingest.segment_size == 200
    assert cfg.ingest.source == "notion"
    assert cfg.annotation.claims_chars == 300
    assert cfg.annotation.entities_chars == 800
    assert cfg.learning.feedback_window == 10
    assert cfg.expansion.ai_suggestions is False
    assert cfg.expansion.seed_groups == [["budget", "costi"]]


# ---------------------------------------------------------------------------
# Env vars
# ---------------------------------------------------------------------------


def test_env_overrides_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "groundwork.yaml", {"generation": {"model": "openai/gpt-4o"}})
    monkeypatch.setenv("GROUNDWORK_GENERATION_MODEL", "ollama/llama3")
    monkeypatch.setenv("GROUNDWORK_EMBEDDING_MODEL", "")
    monkeypatch.setenv("GROUNDWORK_LOG_LEVEL", "debug")

    cfg = load_config(project_dir=tmp_path, global_config_path=_missing(tmp_path))
    assert cfg.generation.model == "ollama/llama3"
    assert cfg.embedding.model == ""
    assert cfg.logging.level == "DEBUG"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "key",
    ["api_key", "openai_api_key", "auth_token", "secret", "password", "credentials"],
)
def test_global_config_rejects_api_keys(tmp_path: Path, key: str) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"generation": {key: "sk-123"}})
    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_max_tokens_is_not_mistaken_for_a_secret(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"generation": {"max_tokens": 100, "timeout_s": 5}})
    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.generation.timeout_s == 5.0


def test_invalid_log_level(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "groundwork.yaml", {"logging": {"level": "LOUD"}})
    with pytest.raises(ConfigError, match="logging.level"):
        load_config(project_dir=tmp_path, global_config_path=_missing(tmp_path))


def test_invalid_seed_groups(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "groundwork.yaml", {"expansion": {"seed_groups": ["budget"]}})
    with pytest.raises(ConfigError, match="seed_groups"):
        load_config(project_dir=tmp_path, global_config_path=_missing(tmp_path))


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "groundwork.yaml", {"chunkers": {"pdf": 1}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=_missing(tmp_path))
    assert any("chunkers" in str(w.message) for w in caught)
