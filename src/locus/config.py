"""Locus configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (LOCUS_EMBEDDING_MODEL, LOCUS_RERANK_BACKEND, LOCUS_RERANK_MODEL)
  3. Per-project locus.yaml  (next to .locus.db)
  4. Global ~/.locus/config.yaml  (model defaults only, no API keys)
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".locus"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "locus.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate keys like max_tokens, overlap_tokens, rrf_k.
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
    ["embedding", "chunking", "search", "rerank", "graph"]
)

_FUSION_METHODS: frozenset[str] = frozenset(["rrf", "weighted"])
_RERANK_BACKENDS: frozenset[str] = frozenset(["auto", "cohere", "llm", "none"])


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
    """Embedding provider configuration (locus.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    batch_size: int = 20


@dataclass
class ChunkingCfg:
    """Chunker budgets, in estimated tokens (locus.yaml: chunking:)."""

    max_tokens: int = 512
    overlap_tokens: int = 75
    min_tokens: int = 50


@dataclass
class SearchCfg:
    """Hybrid search configuration (locus.yaml: search:).

    Attributes:
        top_k: Number of results returned by default.
        rrf_k: RRF smoothing constant.
        fusion: Default fusion method, 'rrf' or 'weighted'.
        heading_boost: Lexical multiplier when a term also occurs in the
            heading/title text.
        phrase_boost: Lexical boost per word of a matched quoted phrase.
        min_lexical_score: Lexical results below this score are dropped.
    """

    top_k: int = 5
    rrf_k: int = 60
    fusion: str = "rrf"
    heading_boost: float = 1.5
    phrase_boost: float = 2.0
    min_lexical_score: float = 0.01


@dataclass
class RerankCfg:
    """Second-pass reranker configuration (locus.yaml: rerank:).

    ``backend: auto`` picks cohere, then llm, then none depending on which
    provider keys are present in the environment.
    """

    backend: str = "auto"
    cohere_model: str = "cohere/rerank-v3.5"
    llm_model: str = "openai/gpt-4o-mini"
    retrieve_k: int = 50


@dataclass
class GraphCfg:
    """Knowledge-graph traversal defaults (locus.yaml: graph:)."""

    default_depth: int = 2


@dataclass
class LocusConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    rerank: RerankCfg = field(default_factory=RerankCfg)
    graph: GraphCfg = field(default_factory=GraphCfg)


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
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: LocusConfig) -> None:
    if cfg.search.fusion not in _FUSION_METHODS:
        raise ConfigError(
            f"search.fusion must be one of {sorted(_FUSION_METHODS)}, got '{cfg.search.fusion}'"
        )
    if cfg.rerank.backend not in _RERANK_BACKENDS:
        raise ConfigError(
            f"rerank.backend must be one of {sorted(_RERANK_BACKENDS)}, got '{cfg.rerank.backend}'"
        )
    for name, value in (
        ("embedding.batch_size", cfg.embedding.batch_size),
        ("chunking.max_tokens", cfg.chunking.max_tokens),
        ("search.top_k", cfg.search.top_k),
        ("search.rrf_k", cfg.search.rrf_k),
        ("rerank.retrieve_k", cfg.rerank.retrieve_k),
    ):
        if value < 1:
            raise ConfigError(f"{name} must be >= 1, got {value}")
    if not 0 <= cfg.chunking.overlap_tokens < cfg.chunking.max_tokens:
        raise ConfigError(
            "chunking.overlap_tokens must be >= 0 and smaller than chunking.max_tokens"
        )


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


def _cfg_from_dict(data: dict[str, Any]) -> LocusConfig:
    """Build a *LocusConfig* from a merged raw YAML dict."""
    cfg = LocusConfig()

    try:
        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                max_tokens=int(c.get("max_tokens", cfg.chunking.max_tokens)),
                overlap_tokens=int(c.get("overlap_tokens", cfg.chunking.overlap_tokens)),
                min_tokens=int(c.get("min_tokens", cfg.chunking.min_tokens)),
            )

        if "search" in data:
            s = data["search"] or {}
            cfg.search = SearchCfg(
                top_k=int(s.get("top_k", cfg.search.top_k)),
                rrf_k=int(s.get("rrf_k", cfg.search.rrf_k)),
                fusion=str(s.get("fusion", cfg.search.fusion)).lower(),
                heading_boost=float(s.get("heading_boost", cfg.search.heading_boost)),
                phrase_boost=float(s.get("phrase_boost", cfg.search.phrase_boost)),
                min_lexical_score=float(
                    s.get("min_lexical_score", cfg.search.min_lexical_score)
                ),
            )

        if "rerank" in data:
            r = data["rerank"] or {}
            cfg.rerank = RerankCfg(
                backend=str(r.get("backend", cfg.rerank.backend)).lower(),
                cohere_model=str(r.get("cohere_model", cfg.rerank.cohere_model)),
                llm_model=str(r.get("llm_model", cfg.rerank.llm_model)),
                retrieve_k=int(r.get("retrieve_k", cfg.rerank.retrieve_k)),
            )

        if "graph" in data:
            g = data["graph"] or {}
            cfg.graph = GraphCfg(
                default_depth=int(g.get("default_depth", cfg.graph.default_depth)),
            )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: LocusConfig) -> LocusConfig:
    """Apply LOCUS_* environment variable overrides (layer 2)."""
    if model := os.environ.get("LOCUS_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if backend := os.environ.get("LOCUS_RERANK_BACKEND"):
        cfg.rerank.backend = backend.lower()
    if model := os.environ.get("LOCUS_RERANK_MODEL"):
        cfg.rerank.llm_model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LocusConfig:
    """Load and return a merged *LocusConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *locus.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *LocusConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value is out of range (unknown fusion/backend, non-positive sizes).
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

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.locus/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Locus global configuration: model defaults only.\n"
            "# NEVER store API keys here, use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "#   export COHERE_API_KEY=...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "\n"
            "rerank:\n"
            "  backend: auto\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
