"""Tests for atomic JSON writes and the store lock."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from vecmem.store.io import read_json, store_lock, write_json_atomic


def test_write_creates_parent_dirs(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "data" / "state.json"
    write_json_atomic(target, {"a": 1})
    assert json.loads(target.read_text(encoding="utf-8")) == {"a": 1}


def test_write_replaces_whole_document(tmp_path: Path) -> None:
    target = tmp_path / "state.json"
    write_json_atomic(target, {"old": True, "extra": [1, 2, 3]})
    write_json_atomic(target, {"new": True})
    assert json.loads(target.read_text(encoding="utf-8")) == {"new": True}


def test_write_leaves_no_temp_files(tmp_path: Path) -> None:
    write_json_atomic(tmp_path / "state.json", [1, 2], indent=2)
    assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


def test_failed_replace_keeps_previous_document(tmp_path: Path) -> None:
    target = tmp_path / "state.json"
    write_json_atomic(target, {"version": 1})

    with patch("vecmem.store.io.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError, match="disk full"):
            write_json_atomic(target, {"version": 2})

    assert json.loads(target.read_text(encoding="utf-8")) == {"version": 1}
    assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


def test_read_json_missing_returns_default(tmp_path: Path) -> None:
    assert read_json(tmp_path / "absent.json", default={"x": 0}) == {"x": 0}


def test_read_json_unparseable_returns_default(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")
    assert read_json(path, default=[]) == []


def test_store_lock_creates_lock_file(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    with store_lock(data_dir):
        assert (data_dir / ".lock").exists()
    # Re-acquirable once released.
    with store_lock(data_dir):
        pass
