"""Groundwork configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (GROUNDWORK_GENERATION_MODEL, GROUNDWORK_EMBEDDING_MODEL,
                             GROUNDWORK_LOG_LEVEL)
  3. Per-project groundwork.yaml  (next to .groundwork.db)
  4. Global ~/.groundwork/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".groundwork"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "groundwork.yaml"

# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like max_tokens or timeout_s.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "embedding",
        "generation",
        "retrieval",
        "expansion",
        "annotation",
        "ingest",
        "learning",
        "logging",
    ]
)

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

# Fixed synonym clusters used by heuristic query expansion.
DEFAULT_SEED_GROUPS: tuple[tuple[str, ...], ...] = (
    ("antiparassitario", "antipulci", "antizecche", "parassiti"),
    ("divieto", "vietato", "proibito", "non consentito"),
    ("claim", "affermazione", "dichiarazione"),
    ("budget", "costi", "spese", "preventivo"),
    ("scadenza", "deadline", "ritardo"),
    ("cliente", "client", "customer"),
    ("campagna", "campaign", "promozione"),
    ("prodotto", "product", "referenza"),
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (groundwork.yaml: embedding:).

    An empty ``model`` means no external provider is configured; the
    deterministic hash embedding is used instead.
    """

    model: str = "openai/text-embedding-3-small"
    batch_size: int = 64
    fallback_dims: int = 128
    timeout_s: float = 20.0


@dataclass
class GenerationCfg:
    """Text-generation models per stage (groundwork.yaml: generation:)."""

    model: str = "anthropic/claude-sonnet-4-20250514"
    utility_model: str = "anthropic/claude-sonnet-4-20250514"
    annotator_model: str = "anthropic/claude-sonnet-4-20250514"
    reranker_model: str = "anthropic/claude-sonnet-4-20250514"
    timeout_s: float = 30.0
    num_retries: int = 0


@dataclass
class RetrievalCfg:
    """Hybrid retrieval + reranking configuration (groundwork.yaml: retrieval:)."""

    top_k: int = 12
    lexical_candidates: int = 80
    expansion_boost: float = 0.05
    rerank: bool = True
    rerank_max_candidates: int = 30
    rerank_cache_size: int = 256


@dataclass
class ExpansionCfg:
    """Query expansion configuration (groundwork.yaml: expansion:)."""

    suggestion_limit: int = 6
    ai_suggestions: bool = True
    seed_groups: list[list[str]] = field(
        default_factory=lambda: [list(g) for g in DEFAULT_SEED_GROUPS]
    )


@dataclass
class AnnotationCfg:
    """Annotation pipeline configuration (groundwork.yaml: annotation:)."""

    claims_chars: int = 500
    entities_chars: int = 800


@dataclass
class IngestCfg:
    """Chunking configuration for the ingestion processor (groundwork.yaml: ingest:)."""

    paragraph_ceiling: int = 1_400
    segment_size: int = 1_000
    source: str = "drive"
    embed_on_ingest: bool = True


@dataclass
class LearningCfg:
    """Weight learner configuration (groundwork.yaml: learning:)."""

    feedback_window: int = 30


@dataclass
class LoggingCfg:
    """Logging configuration (groundwork.yaml: logging:)."""

    level: str = "WARNING"


@dataclass
class GroundworkConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    expansion: ExpansionCfg = field(default_factory=ExpansionCfg)
    annotation: AnnotationCfg = field(default_factory=AnnotationCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    learning: LearningCfg = field(default_factory=LearningCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate_level(level: str) -> str:
    upper = level.upper()
    if upper not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {sorted(_LOG_LEVELS)}, got '{level}'"
        )
    return upper


def _validate_seed_groups(raw: Any) -> list[list[str]]:
    if not isinstance(raw, list) or not all(isinstance(g, list) for g in raw):
        raise ConfigError("expansion.seed_groups must be a list of lists of terms")
    return [[str(t).lower() for t in g if str(t).strip()] for g in raw]


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> GroundworkConfig:
    """Build a *GroundworkConfig* from a merged raw YAML dict."""
    cfg = GroundworkConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model) or ""),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            fallback_dims=int(e.get("fallback_dims", cfg.embedding.fallback_dims)),
            timeout_s=float(e.get("timeout_s", cfg.embedding.timeout_s)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        model = str(g.get("model", cfg.generation.model))
        cfg.generation = GenerationCfg(
            model=model,
            utility_model=str(g.get("utility_model", model)),
            annotator_model=str(g.get("annotator_model", model)),
            reranker_model=str(g.get("reranker_model", model)),
            timeout_s=float(g.get("timeout_s", cfg.generation.timeout_s)),
            num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            lexical_candidates=int(
                r.get("lexical_candidates", cfg.retrieval.lexical_candidates)
            ),
            expansion_boost=float(r.get("expansion_boost", cfg.retrieval.expansion_boost)),
            rerank=bool(r.get("rerank", cfg.retrieval.rerank)),
            rerank_max_candidates=int(
                r.get("rerank_max_candidates", cfg.retrieval.rerank_max_candidates)
            ),
            rerank_cache_size=int(
                r.get("rerank_cache_size", cfg.retrieval.rerank_cache_size)
            ),
        )

    if "expansion" in data:
        x = data["expansion"] or {}
        cfg.expansion = ExpansionCfg(
            suggestion_limit=int(x.get("suggestion_limit", cfg.expansion.suggestion_limit)),
            ai_suggestions=bool(x.get("ai_suggestions", cfg.expansion.ai_suggestions)),
            seed_groups=(
                _validate_seed_groups(x["seed_groups"])
                if "seed_groups" in x
                else cfg.expansion.seed_groups
            ),
        )

    if "annotation" in data:
        a = data["annotation"] or {}
        cfg.annotation = AnnotationCfg(
            claims_chars=int(a.get("claims_chars", cfg.annotation.claims_chars)),
            entities_chars=int(a.get("entities_chars", cfg.annotation.entities_chars)),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        cfg.ingest = IngestCfg(
            paragraph_ceiling=int(i.get("paragraph_ceiling", cfg.ingest.paragraph_ceiling)),
            segment_size=int(i.get("segment_size", cfg.ingest.segment_size)),
            source=str(i.get("source", cfg.ingest.source)),
            embed_on_ingest=bool(i.get("embed_on_ingest", cfg.ingest.embed_on_ingest)),
        )

    if "learning" in data:
        lr = data["learning"] or {}
        cfg.learning = LearningCfg(
            feedback_window=int(lr.get("feedback_window", cfg.learning.feedback_window)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=_validate_level(str(lg.get("level", cfg.logging.level))),
        )

    return cfg


def _apply_env_overrides(cfg: GroundworkConfig) -> GroundworkConfig:
    """Apply GROUNDWORK_* environment variable overrides."""
    if model := os.environ.get("GROUNDWORK_GENERATION_MODEL"):
        cfg.generation.model = model
    if (model := os.environ.get("GROUNDWORK_EMBEDDING_MODEL")) is not None:
        cfg.embedding.model = model
    if level := os.environ.get("GROUNDWORK_LOG_LEVEL"):
        cfg.logging.level = _validate_level(level)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> GroundworkConfig:
    """Load and return a merged *GroundworkConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *groundwork.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *GroundworkConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    return _apply_env_overrides(cfg)
