"""Advisory checkpoints for incremental indexing.

Both trackers are plain JSON documents replaced atomically. A missing or
corrupt file means "nothing indexed yet", never an error.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from vecmem.config import FILE_META_NAME, SESSION_STATE_NAME
from vecmem.store.io import read_json, write_json_atomic

logger = logging.getLogger(__name__)

# Seconds past this are thousands of years out; such values were written in
# epoch milliseconds by earlier tooling sharing the data directory.
_MILLIS_THRESHOLD = 1e11


def _epoch_seconds(value) -> float:
    seconds = float(value)
    return seconds / 1000.0 if seconds > _MILLIS_THRESHOLD else seconds


class FileTracker:
    """Relative path → last indexed modification time (seconds)."""

    def __init__(self, data_dir: Path) -> None:
        self.path = Path(data_dir) / FILE_META_NAME

    def load(self) -> dict[str, float]:
        raw = read_json(self.path, default={})
        if not isinstance(raw, dict):
            logger.warning("File tracker %s is not a JSON object — starting fresh", self.path)
            return {}
        mtimes: dict[str, float] = {}
        for rel_path, entry in raw.items():
            try:
                mtimes[rel_path] = _epoch_seconds(entry["mtime"] if isinstance(entry, dict) else entry)
            except (KeyError, TypeError, ValueError):
                logger.debug("Dropping malformed tracker entry for %s", rel_path)
        return mtimes

    def save(self, mtimes: dict[str, float]) -> None:
        write_json_atomic(self.path, {p: {"mtime": m} for p, m in sorted(mtimes.items())})


@dataclass
class SessionCheckpoint:
    """Per-session watermark.

    Attributes:
        mtime: Log modification time observed when the offset was recorded.
        offset: Number of parsed messages already processed (not a byte offset).
    """

    mtime: float = 0.0
    offset: int = 0


@dataclass
class SessionState:
    """Contents of the session tracker file."""

    files: dict[str, SessionCheckpoint] = field(default_factory=dict)
    last_run: float = 0.0  # epoch seconds of the last completed run

    def advance(self, session_id: str, mtime: float, offset: int) -> None:
        """Record a new checkpoint; the offset never moves backwards."""
        previous = self.files.get(session_id, SessionCheckpoint())
        self.files[session_id] = SessionCheckpoint(
            mtime=max(mtime, previous.mtime),
            offset=max(offset, previous.offset),
        )


class SessionTracker:
    """Session id → ``{mtime, offset}`` plus the last run time."""

    def __init__(self, data_dir: Path) -> None:
        self.path = Path(data_dir) / SESSION_STATE_NAME

    def load(self) -> SessionState:
        raw = read_json(self.path, default={})
        if not isinstance(raw, dict):
            logger.warning("Session tracker %s is not a JSON object — starting fresh", self.path)
            return SessionState()

        state = SessionState()
        try:
            state.last_run = _epoch_seconds(raw.get("lastRun", 0.0))
        except (TypeError, ValueError):
            state.last_run = 0.0
        files = raw.get("files")
        if isinstance(files, dict):
            for session_id, entry in files.items():
                try:
                    state.files[session_id] = SessionCheckpoint(
                        mtime=_epoch_seconds(entry.get("mtime", 0.0)),
                        offset=int(entry.get("offset", 0)),
                    )
                except (AttributeError, TypeError, ValueError):
                    logger.debug("Dropping malformed session checkpoint for %s", session_id)
        return state

    def save(self, state: SessionState, *, now: float | None = None) -> None:
        """Persist *state*, stamping ``last_run`` with *now* (default: current time)."""
        state.last_run = time.time() if now is None else now
        write_json_atomic(
            self.path,
            {
                "files": {
                    sid: {"mtime": cp.mtime, "offset": cp.offset}
                    for sid, cp in sorted(state.files.items())
                },
                "lastRun": state.last_run,
            },
            indent=2,
        )
