"""vecmem configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not in this module)
  2. Environment variables  (VECMEM_WORKSPACE, VECMEM_DATA_DIR,
     VECMEM_EMBEDDING_MODEL, VECMEM_SESSIONS_DIR)
  3. Per-workspace vecmem.yaml  (in the resolved workspace root)
  4. Global ~/.vecmem/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables or a
``.env`` file instead. All YAML reads use yaml.safe_load(), never yaml.load().

Workspace and data directory resolution are explicit functions: nothing here
keeps process-wide state, callers pass the resolved paths down the pipeline.
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR_NAME = ".vecmem"
_GLOBAL_CONFIG_NAME = "config.yaml"
_PROJECT_CONFIG_NAME: str = "vecmem.yaml"

# Files or directories that mark a workspace root.
_WORKSPACE_MARKERS: tuple[str, ...] = ("AGENTS.md", "SOUL.md", "memory")
_MAX_PARENT_WALK = 10

_DATA_DIR_NAME = ".vecmem"
INDEX_FILE_NAME = "vectors.json"
FILE_META_NAME = "file-meta.json"
SESSION_STATE_NAME = "session-ingest-state.json"

# Fields that suggest an API key; forbidden in global config.
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
    ["embedding", "chunking", "index", "sessions", "search"]
)

_DEFAULT_PATTERNS: tuple[str, ...] = (
    "*.md",
    "memory/**/*.md",
    "tasks/**/*.md",
    "crm/**/*.md",
    "skills/*/SKILL.md",
    "config/**/*.md",
    "projects/**/*.md",
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
    """Embedding service configuration (vecmem.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    batch_size: int = 100
    max_chars: int = 8_000
    timeout: float = 60.0
    num_retries: int = 0


@dataclass
class ChunkingCfg:
    """Markdown chunker bounds (vecmem.yaml: chunking:)."""

    max_chars: int = 3_000
    min_chars: int = 20


@dataclass
class IndexCfg:
    """Workspace crawl patterns (vecmem.yaml: index:)."""

    patterns: list[str] = field(default_factory=lambda: list(_DEFAULT_PATTERNS))


@dataclass
class SentinelCfg:
    """A single noise marker.

    Attributes:
        text: Marker text.
        match: ``exact`` compares the stripped message, ``contains`` does a
            substring test.
    """

    text: str
    match: str = "contains"


def _default_sentinels() -> list[SentinelCfg]:
    return [
        SentinelCfg(text="NO_REPLY", match="exact"),
        SentinelCfg(text="HEARTBEAT_OK", match="contains"),
        SentinelCfg(text="Read HEARTBEAT.md if it exists", match="contains"),
    ]


@dataclass
class SessionsCfg:
    """Chat session ingestion (vecmem.yaml: sessions:).

    Attributes:
        dir: Directory holding ``<sessionId>.jsonl`` logs and the index file.
        index_file: Name of the JSON file mapping session keys to session ids.
        label_prefix: Prefix stripped from session keys to build display labels.
        cooldown_seconds: Minimum gap between two ingestion runs.
        max_age_hours: Logs not modified within this window are ignored.
        messages_per_chunk: Messages rendered into a single chunk.
        min_message_chars: Messages with less extracted text are noise.
        min_chunk_chars: Rendered chunks shorter than this are dropped.
        max_message_chars: Per-message truncation inside a rendered chunk.
        skip_roles: Roles that mark tool or system output.
        sentinels: Noise markers (heartbeats, no-reply replies).
    """

    dir: str = "~/.openclaw/agents/main/sessions"
    index_file: str = "sessions.json"
    label_prefix: str = "agent:main:"
    cooldown_seconds: float = 50.0
    max_age_hours: float = 24.0
    messages_per_chunk: int = 5
    min_message_chars: int = 10
    min_chunk_chars: int = 30
    max_message_chars: int = 2_000
    skip_roles: list[str] = field(default_factory=lambda: ["toolResult", "tool", "system"])
    sentinels: list[SentinelCfg] = field(default_factory=_default_sentinels)


@dataclass
class SearchCfg:
    """Search defaults (vecmem.yaml: search:)."""

    top_k: int = 10
    min_score: float = 0.3
    preview_chars: int = 300


@dataclass
class VecmemConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    index: IndexCfg = field(default_factory=IndexCfg)
    sessions: SessionsCfg = field(default_factory=SessionsCfg)
    search: SearchCfg = field(default_factory=SearchCfg)


# ---------------------------------------------------------------------------
# Workspace + data dir resolution
# ---------------------------------------------------------------------------


def resolve_workspace(override: Path | str | None = None, start: Path | None = None) -> Path:
    """Return the workspace root.

    Order: *override* → ``VECMEM_WORKSPACE`` → the nearest directory (walking
    up at most 10 levels from *start*) holding ``AGENTS.md``, ``SOUL.md`` or a
    ``memory/`` directory → *start* itself.

    Args:
        override: Explicit workspace path (e.g. from ``--workspace``).
        start: Directory to start the walk from. Defaults to CWD.
    """
    if override:
        return Path(override).expanduser().resolve()
    if env := os.environ.get("VECMEM_WORKSPACE"):
        return Path(env).expanduser().resolve()

    origin = (start if start is not None else Path.cwd()).resolve()
    current = origin
    for _ in range(_MAX_PARENT_WALK):
        if any((current / marker).exists() for marker in _WORKSPACE_MARKERS):
            return current
        if current.parent == current:
            break
        current = current.parent
    return origin


def resolve_data_dir(workspace: Path, override: Path | str | None = None) -> Path:
    """Return the directory holding the store and tracker files."""
    if override:
        return Path(override).expanduser().resolve()
    if env := os.environ.get("VECMEM_DATA_DIR"):
        return Path(env).expanduser().resolve()
    return workspace / _DATA_DIR_NAME


def load_credentials(workspace: Path, env_var: str = "OPENAI_API_KEY") -> None:
    """Load ``.env`` files until *env_var* is set.

    Already-exported variables always win (``override=False``).
    """
    if os.environ.get(env_var):
        return
    home = Path.home()
    for candidate in (home / ".openclaw" / ".env", home / ".clawdbot" / ".env", workspace / ".env"):
        if candidate.is_file():
            load_dotenv(candidate, override=False)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _secret_key_paths(data: dict[str, Any]) -> list[str]:
    """Return the dotted paths of every key in *data* that names a credential."""
    found: list[str] = []
    stack: list[tuple[str, dict[str, Any]]] = [("", data)]
    while stack:
        prefix, section = stack.pop()
        for key, value in section.items():
            dotted = f"{prefix}{key}"
            if _API_KEY_RE.search(str(key)):
                found.append(dotted)
            if isinstance(value, dict):
                stack.append((f"{dotted}.", value))
    return sorted(found)


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Refuse a global config file that stores credentials."""
    offending = _secret_key_paths(data)
    if not offending:
        return
    env_names = ", ".join(p.rsplit(".", 1)[-1].upper().replace("-", "_") for p in offending)
    raise ConfigError(
        f"Global config '{source}' holds credentials: {', '.join(offending)}.\n"
        f"  Keys are read from the environment (or a workspace .env), never from YAML.\n"
        f"  Delete them from {source.name} and export {env_names} instead."
    )


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    unknown = sorted(set(map(str, data)) - _KNOWN_SECTIONS)
    if unknown:
        warnings.warn(
            f"Ignoring unknown section(s) in '{source}': {', '.join(unknown)}",
            UserWarning,
            stacklevel=4,
        )


def _validate(cfg: VecmemConfig) -> None:
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if cfg.chunking.max_chars <= cfg.chunking.min_chars:
        raise ConfigError("chunking.max_chars must be greater than chunking.min_chars")
    if cfg.sessions.messages_per_chunk < 1:
        raise ConfigError("sessions.messages_per_chunk must be >= 1")
    for sentinel in cfg.sessions.sentinels:
        if sentinel.match not in ("exact", "contains"):
            raise ConfigError(
                f"sessions.sentinels match must be 'exact' or 'contains', got '{sentinel.match}'"
            )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Layer *override* on *base*; nested sections merge, everything else is replaced."""
    return {
        key: (
            _deep_merge(base[key], override[key])
            if isinstance(base.get(key), dict) and isinstance(override.get(key), dict)
            else override.get(key, base.get(key))
        )
        for key in {**base, **override}
    }


def _parse_sentinels(raw: list[Any]) -> list[SentinelCfg]:
    sentinels: list[SentinelCfg] = []
    for item in raw:
        if isinstance(item, str):
            sentinels.append(SentinelCfg(text=item))
        else:
            sentinels.append(
                SentinelCfg(text=str(item["text"]), match=str(item.get("match", "contains")))
            )
    return sentinels


def _cfg_from_dict(data: dict[str, Any]) -> VecmemConfig:
    """Build a *VecmemConfig* from a merged raw YAML dict."""
    cfg = VecmemConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            max_chars=int(e.get("max_chars", cfg.embedding.max_chars)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
            num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
        )

    if "chunking" in data:
        c = data["chunking"]
        cfg.chunking = ChunkingCfg(
            max_chars=int(c.get("max_chars", cfg.chunking.max_chars)),
            min_chars=int(c.get("min_chars", cfg.chunking.min_chars)),
        )

    if "index" in data:
        patterns = data["index"].get("patterns")
        if patterns:
            cfg.index = IndexCfg(patterns=[str(p) for p in patterns])

    if "sessions" in data:
        s = data["sessions"]
        d = cfg.sessions
        cfg.sessions = SessionsCfg(
            dir=str(s.get("dir", d.dir)),
            index_file=str(s.get("index_file", d.index_file)),
            label_prefix=str(s.get("label_prefix", d.label_prefix)),
            cooldown_seconds=float(s.get("cooldown_seconds", d.cooldown_seconds)),
            max_age_hours=float(s.get("max_age_hours", d.max_age_hours)),
            messages_per_chunk=int(s.get("messages_per_chunk", d.messages_per_chunk)),
            min_message_chars=int(s.get("min_message_chars", d.min_message_chars)),
            min_chunk_chars=int(s.get("min_chunk_chars", d.min_chunk_chars)),
            max_message_chars=int(s.get("max_message_chars", d.max_message_chars)),
            skip_roles=[str(r) for r in s.get("skip_roles", d.skip_roles)],
            sentinels=_parse_sentinels(s["sentinels"]) if "sentinels" in s else d.sentinels,
        )

    if "search" in data:
        q = data["search"]
        cfg.search = SearchCfg(
            top_k=int(q.get("top_k", cfg.search.top_k)),
            min_score=float(q.get("min_score", cfg.search.min_score)),
            preview_chars=int(q.get("preview_chars", cfg.search.preview_chars)),
        )

    return cfg


def _apply_env_overrides(cfg: VecmemConfig) -> VecmemConfig:
    """Apply VECMEM_* environment variable overrides (layer 2)."""
    if model := os.environ.get("VECMEM_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if sessions_dir := os.environ.get("VECMEM_SESSIONS_DIR"):
        cfg.sessions.dir = sessions_dir
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    workspace: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> VecmemConfig:
    """Load and return a merged *VecmemConfig*.

    Applies layers in order: global → per-workspace → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        workspace: Directory to search for *vecmem.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            is out of range.
    """
    global_path = (
        global_config_path
        if global_config_path is not None
        else Path.home() / _GLOBAL_CONFIG_DIR_NAME / _GLOBAL_CONFIG_NAME
    )
    search_dir = workspace if workspace is not None else Path.cwd()

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
