"""clipmind configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (CLIPMIND_EMBEDDING_MODEL, CLIPMIND_OPENAI_MODEL,
     CLIPMIND_GEMINI_MODEL, CLIPMIND_DB)
  3. Per-project clipmind.yaml  (current directory)
  4. Global ~/.clipmind/config.yaml  (defaults only — no API keys)
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

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".clipmind"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "clipmind.yaml"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Leaves max_tokens, top_k etc. alone.
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
        "database",
        "embedding",
        "generation",
        "retrieval",
        "chat",
        "indexing",
        "timeouts",
        "transcription",
        "server",
    ]
)

# Generation needs enough candidate material to cite from.
MIN_PRODUCTION_TOP_K = 10


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """SQLite store location (clipmind.yaml: database:)."""

    path: str = ".clipmind.db"


@dataclass
class EmbeddingCfg:
    """Canonical embedding model (clipmind.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string. Every stored vector must come
            from this model — ranking requires equal-length vectors.
        transcript_snippet_chars: Transcript prefix embedded next to the summary.
        document_chars: Document prefix embedded for documents.
    """

    model: str = "openai/text-embedding-3-small"
    transcript_snippet_chars: int = 5_000
    document_chars: int = 2_000


@dataclass
class GenerationCfg:
    """Answer-generation providers (clipmind.yaml: generation:)."""

    default_provider: str = "openai"
    openai_model: str = "openai/gpt-4o-mini"
    gemini_model: str = "gemini/gemini-flash-latest"
    max_tokens: int = 2_048
    temperature: float = 0.3


@dataclass
class RetrievalCfg:
    """Similarity ranking (clipmind.yaml: retrieval:)."""

    top_k: int = 10


@dataclass
class ChatCfg:
    """Chat turn behaviour (clipmind.yaml: chat:)."""

    history_limit: int = 10
    display_timezone: str | None = None  # None → stored UTC
    uploads_base_url: str = ""  # empty → document sources carry no link


@dataclass
class IndexingCfg:
    """Background indexing queue (clipmind.yaml: indexing:)."""

    workers: int = 2
    queue_size: int = 100
    submit_timeout: float = 5.0
    max_retries: int = 0
    retry_backoff: float = 1.0


@dataclass
class TimeoutsCfg:
    """Provider and external-tool timeouts in seconds (clipmind.yaml: timeouts:)."""

    embedding: float = 30.0
    generation: float = 120.0
    transcription: float = 600.0
    download: float = 300.0
    split: float = 600.0


@dataclass
class TranscriptionCfg:
    """Speech-to-text settings (clipmind.yaml: transcription:)."""

    model: str = "openai/whisper-1"
    language: str | None = None
    segment_seconds: int = 600


@dataclass
class ServerCfg:
    """HTTP server bind address (clipmind.yaml: server:)."""

    host: str = "127.0.0.1"
    port: int = 3001
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])


@dataclass
class ClipmindConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    timeouts: TimeoutsCfg = field(default_factory=TimeoutsCfg)
    transcription: TranscriptionCfg = field(default_factory=TranscriptionCfg)
    server: ServerCfg = field(default_factory=ServerCfg)


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


def _validate(cfg: ClipmindConfig) -> None:
    if cfg.retrieval.top_k < MIN_PRODUCTION_TOP_K:
        raise ConfigError(
            f"retrieval.top_k must be at least {MIN_PRODUCTION_TOP_K}, "
            f"got {cfg.retrieval.top_k}."
        )
    if cfg.generation.default_provider not in ("openai", "gemini"):
        raise ConfigError(
            f"generation.default_provider must be 'openai' or 'gemini', "
            f"got '{cfg.generation.default_provider}'."
        )
    if cfg.indexing.workers < 1:
        raise ConfigError(f"indexing.workers must be >= 1, got {cfg.indexing.workers}")
    if cfg.chat.history_limit < 0:
        raise ConfigError(
            f"chat.history_limit must be >= 0, got {cfg.chat.history_limit}"
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


def _cfg_from_dict(data: dict[str, Any]) -> ClipmindConfig:
    """Build a *ClipmindConfig* from a merged raw YAML dict."""
    cfg = ClipmindConfig()

    if "database" in data:
        d = data["database"]
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            transcript_snippet_chars=int(
                e.get("transcript_snippet_chars", cfg.embedding.transcript_snippet_chars)
            ),
            document_chars=int(e.get("document_chars", cfg.embedding.document_chars)),
        )

    if "generation" in data:
        g = data["generation"]
        cfg.generation = GenerationCfg(
            default_provider=str(
                g.get("default_provider", cfg.generation.default_provider)
            ),
            openai_model=str(g.get("openai_model", cfg.generation.openai_model)),
            gemini_model=str(g.get("gemini_model", cfg.generation.gemini_model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(top_k=int(r.get("top_k", cfg.retrieval.top_k)))

    if "chat" in data:
        c = data["chat"]
        cfg.chat = ChatCfg(
            history_limit=int(c.get("history_limit", cfg.chat.history_limit)),
            display_timezone=c.get("display_timezone") or cfg.chat.display_timezone,
            uploads_base_url=str(c.get("uploads_base_url", cfg.chat.uploads_base_url)),
        )

    if "indexing" in data:
        i = data["indexing"]
        cfg.indexing = IndexingCfg(
            workers=int(i.get("workers", cfg.indexing.workers)),
            queue_size=int(i.get("queue_size", cfg.indexing.queue_size)),
            submit_timeout=float(i.get("submit_timeout", cfg.indexing.submit_timeout)),
            max_retries=int(i.get("max_retries", cfg.indexing.max_retries)),
            retry_backoff=float(i.get("retry_backoff", cfg.indexing.retry_backoff)),
        )

    if "timeouts" in data:
        t = data["timeouts"]
        cfg.timeouts = TimeoutsCfg(
            embedding=float(t.get("embedding", cfg.timeouts.embedding)),
            generation=float(t.get("generation", cfg.timeouts.generation)),
            transcription=float(t.get("transcription", cfg.timeouts.transcription)),
            download=float(t.get("download", cfg.timeouts.download)),
            split=float(t.get("split", cfg.timeouts.split)),
        )

    if "transcription" in data:
        tr = data["transcription"]
        cfg.transcription = TranscriptionCfg(
            model=str(tr.get("model", cfg.transcription.model)),
            language=tr.get("language") or cfg.transcription.language,
            segment_seconds=int(
                tr.get("segment_seconds", cfg.transcription.segment_seconds)
            ),
        )

    if "server" in data:
        s = data["server"]
        cfg.server = ServerCfg(
            host=str(s.get("host", cfg.server.host)),
            port=int(s.get("port", cfg.server.port)),
            cors_origins=[str(o) for o in s.get("cors_origins", cfg.server.cors_origins)],
        )

    return cfg


def _apply_env_overrides(cfg: ClipmindConfig) -> ClipmindConfig:
    """Apply CLIPMIND_* environment variable overrides."""
    if model := os.environ.get("CLIPMIND_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("CLIPMIND_OPENAI_MODEL"):
        cfg.generation.openai_model = model
    if model := os.environ.get("CLIPMIND_GEMINI_MODEL"):
        cfg.generation.gemini_model = model
    if db_path := os.environ.get("CLIPMIND_DB"):
        cfg.database.path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ClipmindConfig:
    """Load and return a merged *ClipmindConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *clipmind.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            is out of range (e.g. ``retrieval.top_k`` below 10).
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
