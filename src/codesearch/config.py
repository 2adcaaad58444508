"""codesearch configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (CODESEARCH_EMBEDDING_MODEL, CODESEARCH_DB)
  3. Per-project codesearch.yaml  (in the workspace root)
  4. Global ~/.codesearch/config.yaml  (no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from codesearch.ingest.chunker import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_OVERLAP_TOKENS,
    clamp_max_tokens,
    clamp_overlap_tokens,
)
from codesearch.ingest.embedding import DEFAULT_DIMENSIONS, DEFAULT_MODEL

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".codesearch"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "codesearch.yaml"
DEFAULT_DB_PATH: Path = _GLOBAL_CONFIG_DIR / "index.db"

# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like chunk_max_tokens.
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

# Known top-level sections — unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "indexing", "search", "storage"])

DEFAULT_INCLUDE_PATTERNS: tuple[str, ...] = (
    "**/*.ts",
    "**/*.js",
    "**/*.tsx",
    "**/*.jsx",
    "**/*.py",
    "**/*.java",
    "**/*.cs",
    "**/*.go",
    "**/*.rs",
    "**/*.cpp",
    "**/*.c",
    "**/*.h",
    "**/*.hpp",
    "**/*.md",
    "**/*.json",
    "**/*.yaml",
    "**/*.yml",
    "**/*.xml",
    "**/*.html",
    "**/*.css",
    "**/*.scss",
    "**/*.less",
)

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    "**/out/**",
    "**/build/**",
    "**/*.min.js",
    "**/*.map",
    "**/package-lock.json",
    "**/yarn.lock",
    "**/pnpm-lock.yaml",
    "**/.vscode/**",
    "**/bin/**",
    "**/obj/**",
    "**/__pycache__/**",
    "**/.venv/**",
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
    """Embedding model configuration (codesearch.yaml: embedding:)."""

    model: str = DEFAULT_MODEL
    dimensions: int = DEFAULT_DIMENSIONS


@dataclass
class IndexingCfg:
    """Chunking and file selection (codesearch.yaml: indexing:).

    Attributes:
        chunk_max_tokens: Token budget per chunk, clamped to [256, 2048].
        chunk_overlap_tokens: Tokens repeated between chunks, clamped to
            [0, chunk_max_tokens - 1].
        include_patterns: Globs a file must match to be indexed.
        exclude_patterns: Globs that veto indexing; evaluated first.
    """

    chunk_max_tokens: int = DEFAULT_MAX_TOKENS
    chunk_overlap_tokens: int = DEFAULT_OVERLAP_TOKENS
    include_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS))
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))

    def __post_init__(self) -> None:
        self.chunk_max_tokens = clamp_max_tokens(self.chunk_max_tokens)
        self.chunk_overlap_tokens = clamp_overlap_tokens(
            self.chunk_overlap_tokens, self.chunk_max_tokens
        )


@dataclass
class SearchCfg:
    """Retrieval configuration (codesearch.yaml: search:).

    Attributes:
        max_results: Results returned when the caller gives no limit.
        candidate_multiplier: Over-fetch factor applied before include/exclude
            filtering, since filtering happens after vector retrieval.
    """

    max_results: int = 10
    candidate_multiplier: int = 3


@dataclass
class StorageCfg:
    """Where the index lives (codesearch.yaml: storage:)."""

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)


@dataclass
class CodeSearchConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)


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
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _as_pattern_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"indexing.{key} must be a list of glob strings, got {value!r}")


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


def _cfg_from_dict(data: dict[str, Any]) -> CodeSearchConfig:
    """Build a *CodeSearchConfig* from a merged raw YAML dict."""
    cfg = CodeSearchConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
        )
        if cfg.embedding.dimensions < 1:
            raise ConfigError(
                f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}"
            )

    if "indexing" in data:
        ix = data["indexing"] or {}
        # User excludes extend the defaults; user includes replace them.
        include = _as_pattern_list(ix.get("include_patterns"), "include_patterns")
        exclude = _as_pattern_list(ix.get("exclude_patterns"), "exclude_patterns")
        cfg.indexing = IndexingCfg(
            chunk_max_tokens=int(ix.get("chunk_max_tokens", cfg.indexing.chunk_max_tokens)),
            chunk_overlap_tokens=int(
                ix.get("chunk_overlap_tokens", cfg.indexing.chunk_overlap_tokens)
            ),
            include_patterns=include or list(DEFAULT_INCLUDE_PATTERNS),
            exclude_patterns=list(DEFAULT_EXCLUDE_PATTERNS)
            + [p for p in exclude if p not in DEFAULT_EXCLUDE_PATTERNS],
        )

    if "search" in data:
        s = data["search"] or {}
        cfg.search = SearchCfg(
            max_results=int(s.get("max_results", cfg.search.max_results)),
            candidate_multiplier=int(
                s.get("candidate_multiplier", cfg.search.candidate_multiplier)
            ),
        )
        if cfg.search.max_results < 1 or cfg.search.candidate_multiplier < 1:
            raise ConfigError("search.max_results and search.candidate_multiplier must be >= 1")

    if "storage" in data:
        st = data["storage"] or {}
        if st.get("db_path"):
            cfg.storage = StorageCfg(db_path=Path(str(st["db_path"])).expanduser())

    return cfg


def _apply_env_overrides(cfg: CodeSearchConfig) -> CodeSearchConfig:
    """Apply CODESEARCH_* environment variable overrides."""
    if model := os.environ.get("CODESEARCH_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("CODESEARCH_DB"):
        cfg.storage.db_path = Path(db_path).expanduser()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CodeSearchConfig:
    """Load and return a merged *CodeSearchConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *codesearch.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value has the wrong shape.
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
