"""Chat-session ingestion from append-only JSONL logs.

Each run:
  0. Returns ``skipped`` if the previous run finished less than
     ``cooldown_seconds`` ago (unless forced).
  1. Reads the session index and keeps logs modified within ``max_age_hours``.
  2. Skips a log whose mtime has not advanced past its checkpoint.
  3. Decodes every line independently; malformed lines are skipped.
  4. Takes only messages at or after the checkpoint offset (a message count).
  5. Drops noise (tool/system roles, short texts, sentinel markers).
  6. Renders survivors in groups of ``messages_per_chunk`` into one chunk each,
     dropping renders shorter than ``min_chunk_chars``.
  7. Embeds every chunk of every session in one call and appends them to the
     store; session chunks are never replaced or deleted here.
  8. Advances each checkpoint to the full parsed message count, filtered
     messages included, and persists the tracker with the run time.

If embedding fails, checkpoints are advanced only for sessions that had
nothing to embed; the tracker is saved and the error propagates.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from vecmem.config import SentinelCfg, SessionsCfg
from vecmem.ingest.embedding import Embedder
from vecmem.store.io import read_json, store_lock
from vecmem.store.models import Chunk
from vecmem.store.trackers import SessionCheckpoint, SessionState, SessionTracker
from vecmem.store.vector_store import VectorStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class Message:
    """A decoded session record with its content flattened to text."""

    role: str
    content: str
    timestamp: Any = None
    id: str | None = None


@dataclass
class SessionSource:
    """An active session log discovered through the session index."""

    key: str
    session_id: str
    path: Path
    mtime: float
    label: str


def extract_text(content: Any) -> str:
    """Flatten message content: strings as-is, ``type == "text"`` parts joined by newlines."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(part.get("text") or "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


def decode_record(line: str) -> Message | None:
    """Decode one JSONL line.

    Accepts the enveloped shape ``{"type": "message", "message": {role, content}, ...}``
    and the flat shape ``{"role": ..., "content": ...}``. Anything else,
    including invalid JSON, yields None.
    """
    try:
        entry = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(entry, dict):
        return None

    inner = entry.get("message")
    if entry.get("type") == "message" and isinstance(inner, dict):
        return Message(
            role=str(inner.get("role") or ""),
            content=extract_text(inner.get("content")),
            timestamp=entry.get("timestamp"),
            id=entry.get("id"),
        )
    if entry.get("role") and entry.get("content"):
        return Message(
            role=str(entry["role"]),
            content=extract_text(entry["content"]),
            timestamp=entry.get("timestamp"),
            id=entry.get("id"),
        )
    return None


def parse_log(path: Path) -> list[Message]:
    """Decode every non-blank line of *path*, skipping the malformed ones."""
    messages: list[Message] = []
    skipped = 0
    for line in path.read_text(encoding="utf-8", errors="replace").split("\n"):
        if not line.strip():
            continue
        message = decode_record(line)
        if message is None:
            skipped += 1
            continue
        messages.append(message)
    if skipped:
        logger.debug("%s: skipped %d undecodable lines", path.name, skipped)
    return messages


# ---------------------------------------------------------------------------
# Noise filter
# ---------------------------------------------------------------------------


@dataclass
class NoiseFilter:
    """Content-based filter for messages that should never be indexed.

    Attributes:
        skip_roles: Roles carrying tool or system output.
        min_chars: Minimum extracted text length.
        sentinels: Marker texts with an ``exact`` or ``contains`` match mode.
    """

    skip_roles: frozenset[str] = frozenset({"toolResult", "tool", "system"})
    min_chars: int = 10
    sentinels: Sequence[SentinelCfg] = field(default_factory=list)

    @classmethod
    def from_config(cls, cfg: SessionsCfg) -> NoiseFilter:
        return cls(
            skip_roles=frozenset(cfg.skip_roles),
            min_chars=cfg.min_message_chars,
            sentinels=list(cfg.sentinels),
        )

    def is_noise(self, message: Message) -> bool:
        if message.role in self.skip_roles:
            return True
        text = message.content
        if not text or len(text) < self.min_chars:
            return True
        return any(_sentinel_matches(s, text) for s in self.sentinels)


def _sentinel_matches(sentinel: SentinelCfg, text: str) -> bool:
    if sentinel.match == "exact":
        return text.strip() == sentinel.text
    return sentinel.text in text


# ---------------------------------------------------------------------------
# Discovery + rendering
# ---------------------------------------------------------------------------


def discover_sources(
    sessions_dir: Path,
    index_file: str,
    label_prefix: str,
    max_age_seconds: float,
    now: float,
) -> list[SessionSource]:
    """Return session logs listed in the index and modified within the age window."""
    index_path = sessions_dir / index_file
    index = read_json(index_path, default={})
    if not isinstance(index, dict):
        logger.warning("Session index %s is not a JSON object — ignoring", index_path)
        return []

    cutoff = now - max_age_seconds
    sources: list[SessionSource] = []
    for key, entry in index.items():
        if not isinstance(entry, dict) or not entry.get("sessionId"):
            continue
        session_id = str(entry["sessionId"])
        session_file = entry.get("sessionFile")
        if session_file and not isinstance(session_file, str):
            logger.debug("Skipping %s: sessionFile is not a path (%r)", key, session_file)
            continue
        log_path = Path(session_file) if session_file else Path(f"{session_id}.jsonl")
        if not log_path.is_absolute():
            log_path = sessions_dir / log_path
        if not log_path.is_file():
            continue

        mtime = log_path.stat().st_mtime
        if mtime < cutoff:
            continue
        label = key[len(label_prefix):] if label_prefix and key.startswith(label_prefix) else key
        sources.append(SessionSource(key, session_id, log_path, mtime, label))
    return sources


def render_batch(messages: Sequence[Message], label: str, max_message_chars: int = 2_000) -> str:
    """Render messages as ``[label] Human: ...`` / ``[label] Assistant: ...`` turns."""
    turns: list[str] = []
    for message in messages:
        speaker = "Human" if message.role == "user" else "Assistant"
        text = message.content
        if len(text) > max_message_chars:
            text = text[:max_message_chars] + "..."
        turns.append(f"[{label}] {speaker}: {text}")
    return "\n\n".join(turns)


# ---------------------------------------------------------------------------
# Ingester
# ---------------------------------------------------------------------------


@dataclass
class SessionIngestResult:
    status: str = "ok"
    reason: str | None = None
    message: str | None = None
    chunks_ingested: int = 0
    total_index: int | None = None
    sessions_checked: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status}
        if self.reason:
            data["reason"] = self.reason
            return data
        if self.message:
            data["message"] = self.message
        data["chunksIngested"] = self.chunks_ingested
        if self.total_index is not None:
            data["totalIndex"] = self.total_index
        data["sessionsChecked"] = self.sessions_checked
        return data


class SessionIngester:
    """Append new chat messages from active sessions to the store.

    Args:
        data_dir: Directory holding the store and session tracker.
        embedder: Anything with ``embed(texts) -> vectors``.
        cfg: Session ingestion settings.
        clock: Time source in epoch seconds (for tests).
    """

    def __init__(
        self,
        data_dir: Path,
        embedder: Embedder,
        cfg: SessionsCfg | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.embedder = embedder
        self.cfg = cfg or SessionsCfg()
        self.clock = clock
        self.noise = NoiseFilter.from_config(self.cfg)
        self.store = VectorStore(self.data_dir)
        self.tracker = SessionTracker(self.data_dir)

    @property
    def sessions_dir(self) -> Path:
        return Path(self.cfg.dir).expanduser()

    def run(self, force: bool = False) -> SessionIngestResult:
        now = self.clock()
        state = self.tracker.load()

        if not force and now - state.last_run < self.cfg.cooldown_seconds:
            return SessionIngestResult(status="skipped", reason="too_soon")

        sources = discover_sources(
            self.sessions_dir,
            self.cfg.index_file,
            self.cfg.label_prefix,
            self.cfg.max_age_hours * 3600,
            now,
        )
        if not sources:
            with store_lock(self.data_dir):
                self.tracker.save(state, now=now)
            return SessionIngestResult(message="No active sessions")

        now_ms = int(now * 1000)
        pending: list[Chunk] = []
        # Checkpoints for sessions with nothing to embed, and for those waiting on embedding.
        settled: dict[str, SessionCheckpoint] = {}
        waiting: dict[str, SessionCheckpoint] = {}

        for source in sources:
            checkpoint = state.files.get(source.session_id, SessionCheckpoint())
            if source.mtime <= checkpoint.mtime:
                continue

            chunks, parsed = self._collect(source, checkpoint.offset, now_ms, first_index=len(pending))
            target = waiting if chunks else settled
            target[source.session_id] = SessionCheckpoint(mtime=source.mtime, offset=parsed)
            pending.extend(chunks)

        if not pending:
            self._advance(state, settled)
            with store_lock(self.data_dir):
                self.tracker.save(state, now=now)
            return SessionIngestResult(message="No new messages", sessions_checked=len(sources))

        try:
            vectors = self.embedder.embed([c.text for c in pending])
        except Exception:
            self._advance(state, settled)
            with store_lock(self.data_dir):
                self.tracker.save(state, now=now)
            raise

        for chunk, vector in zip(pending, vectors):
            chunk.vector = vector
            chunk.indexed_at = now_ms

        with store_lock(self.data_dir):
            docs = self.store.load()
            self.store.save(docs + pending)
            self._advance(state, settled)
            self._advance(state, waiting)
            self.tracker.save(state, now=now)

        logger.info("Ingested %d chunks from %d sessions", len(pending), len(waiting))
        return SessionIngestResult(
            chunks_ingested=len(pending),
            total_index=len(docs) + len(pending),
            sessions_checked=len(sources),
        )

    def _collect(
        self,
        source: SessionSource,
        offset: int,
        now_ms: int,
        first_index: int,
    ) -> tuple[list[Chunk], int]:
        """Build chunks for messages past *offset*; return them with the parsed count."""
        messages = parse_log(source.path)
        if offset > len(messages):
            logger.warning(
                "%s has %d messages but %d were already ingested — log was rewritten?",
                source.session_id, len(messages), offset,
            )

        survivors = [
            (index, message)
            for index, message in enumerate(messages[offset:], start=offset)
            if not self.noise.is_noise(message)
        ]

        heading_time = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M")
        size = self.cfg.messages_per_chunk
        chunks: list[Chunk] = []
        for start in range(0, len(survivors), size):
            group = survivors[start : start + size]
            text = render_batch([m for _, m in group], source.label, self.cfg.max_message_chars)
            if len(text) < self.cfg.min_chunk_chars:
                continue
            n = first_index + len(chunks)
            chunks.append(
                Chunk(
                    id=f"session:{source.session_id}:{now_ms}:{n}",
                    source=f"session:{source.session_id}",
                    text=text,
                    heading=f"Chat: {source.label} ({heading_time})",
                    meta={
                        "label": source.label,
                        "sessionId": source.session_id,
                        "timestamp": now_ms,
                        "messages": [group[0][0], group[-1][0]],
                    },
                )
            )
        return chunks, len(messages)

    @staticmethod
    def _advance(state: SessionState, checkpoints: dict[str, SessionCheckpoint]) -> None:
        for session_id, checkpoint in checkpoints.items():
            state.advance(session_id, checkpoint.mtime, checkpoint.offset)
