"""Atomic JSON persistence and the advisory store lock.

Every state file is replaced whole: written to a temp file in the same
directory, then swapped in with ``os.replace``. Readers therefore see either
the old or the new document, never a torn one.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".lock"


def write_json_atomic(path: Path, data: Any, *, indent: int | None = None) -> None:
    """Serialise *data* to *path* atomically (temp file + ``os.replace``)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(data, indent=indent, ensure_ascii=False)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_json(path: Path, default: Any) -> Any:
    """Return the parsed JSON at *path*, or *default* if missing or unreadable.

    Unparseable files are logged and treated as absent.
    """
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable state file %s: %s", path, exc)
        return default


@contextmanager
def store_lock(data_dir: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on ``<data_dir>/.lock``.

    Wraps every read-merge-write of the store and tracker files so that the
    workspace indexer and the session ingester never interleave their writes.
    """
    data_dir.mkdir(parents=True, exist_ok=True)
    lock_path = data_dir / LOCK_FILE_NAME
    with lock_path.open("a+") as fh:
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
