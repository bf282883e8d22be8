"""Tests for vecmem config loader and path resolution."""

from __future__ import annotations

import os
import warnings
from pathlib import Path

import pytest
import yaml

from vecmem.config import (
    ConfigError,
    SentinelCfg,
    load_config,
    load_credentials,
    resolve_data_dir,
    resolve_workspace,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data), encoding="utf-8")


def _missing_global(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent" / "config.yaml"


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = load_config(tmp_path, global_config_path=_missing_global(tmp_path))

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.batch_size == 100
    assert cfg.embedding.max_chars == 8_000
    assert cfg.chunking.max_chars == 3_000
    assert cfg.chunking.min_chars == 20
    assert "memory/**/*.md" in cfg.index.patterns
    assert cfg.sessions.cooldown_seconds == 50.0
    assert cfg.sessions.max_age_hours == 24.0
    assert cfg.sessions.messages_per_chunk == 5
    assert cfg.sessions.label_prefix == "agent:main:"
    assert cfg.search.top_k == 10
    assert cfg.search.min_score == 0.3
    assert cfg.search.preview_chars == 300


def test_default_sentinels() -> None:
    cfg = load_config(Path("/nonexistent-vecmem-ws"), global_config_path=Path("/nonexistent.yaml"))
    texts = {(s.text, s.match) for s in cfg.sessions.sentinels}
    assert ("NO_REPLY", "exact") in texts
    assert ("HEARTBEAT_OK", "contains") in texts


def test_global_config_read_from_home(tmp_path: Path) -> None:
    # HOME is redirected to tmp_path/home by the autouse fixture.
    _write_yaml(tmp_path / "home" / ".vecmem" / "config.yaml", {"search": {"top_k": 4}})
    cfg = load_config(tmp_path / "ws")
    assert cfg.search.top_k == 4


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_workspace_overrides_global(tmp_path: Path) -> None:
    global_path = tmp_path / "global.yaml"
    _write_yaml(global_path, {"search": {"top_k": 5, "min_score": 0.5}})
    _write_yaml(tmp_path / "vecmem.yaml", {"search": {"top_k": 20}})

    cfg = load_config(tmp_path, global_config_path=global_path)

    assert cfg.search.top_k == 20
    # Deep merge keeps the global value that the workspace file did not set.
    assert cfg.search.min_score == 0.5


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "vecmem.yaml", {"embedding": {"model": "openai/text-embedding-3-large"}})
    monkeypatch.setenv("VECMEM_EMBEDDING_MODEL", "ollama/nomic-embed-text")
    monkeypatch.setenv("VECMEM_SESSIONS_DIR", "/tmp/sessions")

    cfg = load_config(tmp_path, global_config_path=_missing_global(tmp_path))

    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.sessions.dir == "/tmp/sessions"


def test_index_patterns_replaced(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "vecmem.yaml", {"index": {"patterns": ["docs/**/*.md"]}})
    cfg = load_config(tmp_path, global_config_path=_missing_global(tmp_path))
    assert cfg.index.patterns == ["docs/**/*.md"]


def test_sentinels_accept_strings_and_mappings(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "vecmem.yaml",
        {"sessions": {"sentinels": ["PING", {"text": "SILENT", "match": "exact"}]}},
    )
    cfg = load_config(tmp_path, global_config_path=_missing_global(tmp_path))
    assert cfg.sessions.sentinels == [
        SentinelCfg(text="PING", match="contains"),
        SentinelCfg(text="SILENT", match="exact"),
    ]


def test_empty_yaml_file_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "vecmem.yaml").write_text("", encoding="utf-8")
    cfg = load_config(tmp_path, global_config_path=_missing_global(tmp_path))
    assert cfg.search.top_k == 10


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_global_config_rejects_api_key(tmp_path: Path) -> None:
    global_path = tmp_path / "global.yaml"
    _write_yaml(global_path, {"embedding": {"api_key": "sk-123"}})

    with pytest.raises(ConfigError, match="embedding.api_key"):
        load_config(tmp_path, global_config_path=global_path)


def test_global_config_names_every_credential(tmp_path: Path) -> None:
    global_path = tmp_path / "global.yaml"
    _write_yaml(
        global_path,
        {"embedding": {"openai_api_key": "sk-1", "model": "m"}, "search": {"top_k": 3}, "api-key": "x"},
    )

    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path, global_config_path=global_path)

    message = str(excinfo.value)
    assert "api-key, embedding.openai_api_key" in message
    assert "API_KEY, OPENAI_API_KEY" in message
    assert "top_k" not in message


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "vecmem.yaml", {"retrieval": {"top_k": 3}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(tmp_path, global_config_path=_missing_global(tmp_path))

    assert any("retrieval" in str(w.message) for w in caught)


def test_invalid_batch_size_rejected(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "vecmem.yaml", {"embedding": {"batch_size": 0}})
    with pytest.raises(ConfigError, match="batch_size"):
        load_config(tmp_path, global_config_path=_missing_global(tmp_path))


def test_chunk_bounds_must_be_ordered(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "vecmem.yaml", {"chunking": {"max_chars": 10, "min_chars": 20}})
    with pytest.raises(ConfigError, match="max_chars"):
        load_config(tmp_path, global_config_path=_missing_global(tmp_path))


def test_invalid_sentinel_match_rejected(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "vecmem.yaml",
        {"sessions": {"sentinels": [{"text": "X", "match": "regex"}]}},
    )
    with pytest.raises(ConfigError, match="regex"):
        load_config(tmp_path, global_config_path=_missing_global(tmp_path))


# ---------------------------------------------------------------------------
# Workspace / data dir resolution
# ---------------------------------------------------------------------------


def test_resolve_workspace_override_wins(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("VECMEM_WORKSPACE", str(tmp_path / "env"))
    assert resolve_workspace(tmp_path / "explicit") == (tmp_path / "explicit").resolve()


def test_resolve_workspace_from_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("VECMEM_WORKSPACE", str(tmp_path / "env"))
    assert resolve_workspace(start=tmp_path) == (tmp_path / "env").resolve()


def test_resolve_workspace_walks_up_to_marker(tmp_path: Path) -> None:
    root = tmp_path / "ws"
    nested = root / "projects" / "alpha" / "notes"
    nested.mkdir(parents=True)
    (root / "AGENTS.md").write_text("# Agents\n", encoding="utf-8")

    assert resolve_workspace(start=nested) == root.resolve()


def test_resolve_workspace_memory_dir_marker(tmp_path: Path) -> None:
    (tmp_path / "ws" / "memory").mkdir(parents=True)
    assert resolve_workspace(start=tmp_path / "ws" / "memory") == (tmp_path / "ws").resolve()


def test_resolve_workspace_falls_back_to_start(tmp_path: Path) -> None:
    start = tmp_path / "plain"
    start.mkdir()
    # An ancestor of tmp_path may itself carry a marker on some hosts.
    result = resolve_workspace(start=start)
    assert result == start.resolve() or result in start.resolve().parents


def test_resolve_data_dir_default(tmp_path: Path) -> None:
    assert resolve_data_dir(tmp_path) == tmp_path / ".vecmem"


def test_resolve_data_dir_env_and_override(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("VECMEM_DATA_DIR", str(tmp_path / "env-data"))
    assert resolve_data_dir(tmp_path) == (tmp_path / "env-data").resolve()
    assert resolve_data_dir(tmp_path, tmp_path / "flag") == (tmp_path / "flag").resolve()


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def test_load_credentials_reads_workspace_env(tmp_path: Path, monkeypatch) -> None:
    # setenv first so the value loaded from .env is undone after the test.
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    (tmp_path / ".env").write_text("OPENAI_API_KEY=sk-from-file\n", encoding="utf-8")

    load_credentials(tmp_path)

    assert os.environ["OPENAI_API_KEY"] == "sk-from-file"


def test_load_credentials_keeps_exported_value(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-exported")
    (tmp_path / ".env").write_text("OPENAI_API_KEY=sk-from-file\n", encoding="utf-8")

    load_credentials(tmp_path)

    assert os.environ["OPENAI_API_KEY"] == "sk-exported"
