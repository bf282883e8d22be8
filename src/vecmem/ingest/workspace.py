"""Incremental workspace indexer.

One run is a straight pipeline: CRAWL → DIFF → CHUNK → EMBED → MERGE → PERSIST.

- A file is *changed* when it is untracked or its mtime is newer than the
  tracked value. ``full=True`` clears the tracker and treats every file as changed.
- A tracked file missing from the crawl is *removed*: its chunks are evicted
  and its tracker entry pruned.
- With nothing changed and nothing removed the run is a no-op and writes nothing.
- Embedding happens before any write, so a failed embedding leaves the store
  and tracker exactly as they were.
- MERGE reloads the store under the store lock so chunks appended by a
  concurrent session ingest are kept. Chunks whose source is not a workspace
  file (``session:`` / ``ingest:``) are never evicted by the indexer.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vecmem.ingest.embedding import Embedder
from vecmem.ingest.markdown import MarkdownChunker
from vecmem.store.io import store_lock
from vecmem.store.models import Chunk
from vecmem.store.trackers import FileTracker
from vecmem.store.vector_store import StoreCorruptError, VectorStore

logger = logging.getLogger(__name__)

# Chunk sources produced by the ingesters rather than by workspace files.
NON_FILE_PREFIXES: tuple[str, ...] = ("session:", "ingest:")


def is_file_source(source: str) -> bool:
    """True if *source* names a workspace file rather than an ingested stream."""
    return not source.startswith(NON_FILE_PREFIXES)


@dataclass
class CrawledFile:
    rel_path: str
    abs_path: Path
    mtime: float


@dataclass
class IndexResult:
    """Outcome of one indexer run."""

    files_indexed: list[str] = field(default_factory=list)
    files_removed: list[str] = field(default_factory=list)
    chunks_added: int = 0
    total_chunks: int = 0
    rebuilt: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.files_indexed or self.files_removed)

    def to_dict(self) -> dict[str, Any]:
        if not self.changed:
            return {
                "status": "ok",
                "message": "No files changed",
                "filesIndexed": 0,
                "totalChunks": self.total_chunks,
            }
        data: dict[str, Any] = {
            "status": "ok",
            "filesIndexed": len(self.files_indexed),
            "filesRemoved": len(self.files_removed),
            "chunksAdded": self.chunks_added,
            "totalChunks": self.total_chunks,
            "files": self.files_indexed,
        }
        if self.rebuilt:
            data["rebuilt"] = True
        return data


class WorkspaceIndexer:
    """Index Markdown files under *workspace* into the store in *data_dir*.

    Args:
        workspace: Resolved workspace root.
        data_dir: Directory holding the store and tracker files.
        embedder: Anything with ``embed(texts) -> vectors``.
        patterns: Glob patterns relative to *workspace*.
        chunker: Markdown chunker (default bounds when omitted).
        clock: Time source in epoch seconds (for tests).
    """

    def __init__(
        self,
        workspace: Path,
        data_dir: Path,
        embedder: Embedder,
        patterns: Sequence[str],
        chunker: MarkdownChunker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.workspace = Path(workspace)
        self.data_dir = Path(data_dir)
        self.embedder = embedder
        self.patterns = list(patterns)
        self.chunker = chunker or MarkdownChunker()
        self.clock = clock
        self.store = VectorStore(self.data_dir)
        self.tracker = FileTracker(self.data_dir)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(self, full: bool = False) -> IndexResult:
        rebuild = False
        if self.store.exists():
            try:
                self.store.load()
            except StoreCorruptError as exc:
                logger.warning("%s: rebuilding the whole index", exc)
                full = rebuild = True

        current = self.crawl()
        previous = self.tracker.load()
        tracked = {} if full else previous
        changed = self.diff(current, tracked)
        removed = sorted(p for p in previous if p not in current)
        logger.info(
            "Crawled %d files: %d changed, %d removed", len(current), len(changed), len(removed)
        )

        if not changed and not removed:
            return IndexResult(total_chunks=self._count_chunks())

        pending, unreadable = self._chunk(changed)
        for rel_path in unreadable:
            changed.remove(rel_path)
            current.pop(rel_path, None)
        removed = sorted(set(removed) | set(unreadable))

        if pending:
            vectors = self.embedder.embed([c.text for c in pending])
            indexed_at = int(self.clock() * 1000)
            for chunk, vector in zip(pending, vectors):
                chunk.vector = vector
                chunk.indexed_at = indexed_at

        with store_lock(self.data_dir):
            base = [] if rebuild else self._reload()
            if full and pending:
                base = _drop_other_dimensions(base, len(pending[0].vector))
            merged = self.merge(base, pending, replaced=set(changed) | set(removed), current=current)
            self.store.save(merged)

            mtimes = {p: m for p, m in tracked.items() if p in current}
            mtimes.update({p: current[p].mtime for p in changed})
            self.tracker.save(mtimes)

        return IndexResult(
            files_indexed=sorted(changed),
            files_removed=removed,
            chunks_added=len(pending),
            total_chunks=len(merged),
            rebuilt=rebuild,
        )

    def crawl(self) -> dict[str, CrawledFile]:
        """Return every file matching the configured patterns, keyed by relative path."""
        found: dict[str, CrawledFile] = {}
        for pattern in self.patterns:
            for path in sorted(self.workspace.glob(pattern)):
                if not path.is_file():
                    continue
                rel_path = path.relative_to(self.workspace).as_posix()
                if rel_path not in found:
                    found[rel_path] = CrawledFile(rel_path, path, path.stat().st_mtime)
        return dict(sorted(found.items()))

    @staticmethod
    def diff(current: dict[str, CrawledFile], tracked: dict[str, float]) -> list[str]:
        """Return relative paths that are untracked or newer than their tracked mtime."""
        return [
            rel_path
            for rel_path, crawled in current.items()
            if rel_path not in tracked or crawled.mtime > tracked[rel_path]
        ]

    @staticmethod
    def merge(
        base: Sequence[Chunk],
        new_chunks: Sequence[Chunk],
        replaced: set[str],
        current: dict[str, CrawledFile],
    ) -> list[Chunk]:
        """Drop replaced or vanished file chunks from *base*, then append *new_chunks*."""
        kept = [
            c
            for c in base
            if c.source not in replaced
            and (not is_file_source(c.source) or c.source in current)
        ]
        return kept + list(new_chunks)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _chunk(self, changed: list[str]) -> tuple[list[Chunk], list[str]]:
        pending: list[Chunk] = []
        unreadable: list[str] = []
        for rel_path in changed:
            abs_path = self.workspace / rel_path
            try:
                content = abs_path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Cannot read %s: %s — treating as removed", rel_path, exc)
                unreadable.append(rel_path)
                continue
            chunks = self.chunker.chunk(rel_path, content)
            logger.debug("%s → %d chunks", rel_path, len(chunks))
            pending.extend(chunks)
        return pending, unreadable

    def _reload(self) -> list[Chunk]:
        try:
            return self.store.load()
        except StoreCorruptError as exc:
            logger.warning("%s: discarding the stored chunks", exc)
            return []

    def _count_chunks(self) -> int:
        try:
            return len(self.store.load())
        except StoreCorruptError:
            return 0


def _drop_other_dimensions(chunks: list[Chunk], dimension: int) -> list[Chunk]:
    """Remove chunks embedded at a different dimension (the model changed)."""
    kept = [c for c in chunks if len(c.vector) == dimension]
    if len(kept) < len(chunks):
        logger.warning(
            "Dropped %d chunks embedded at a different dimension than %d",
            len(chunks) - len(kept), dimension,
        )
    return kept
