"""Ad-hoc text ingestion under an ``ingest:<label>`` source.

Re-ingesting the same label replaces that label's chunks; everything else in
the store is left alone.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vecmem.ingest.embedding import Embedder
from vecmem.ingest.markdown import MarkdownChunker
from vecmem.store.io import store_lock
from vecmem.store.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class AdhocResult:
    source: str
    chunks_ingested: int = 0
    total_chunks: int | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.chunks_ingested:
            return {"status": "ok", "message": "No content to ingest", "chunksIngested": 0}
        return {
            "status": "ok",
            "source": self.source,
            "chunksIngested": self.chunks_ingested,
            "totalChunks": self.total_chunks,
        }


def ingest_text(
    data_dir: Path,
    embedder: Embedder,
    label: str,
    text: str,
    chunker: MarkdownChunker | None = None,
    clock: Callable[[], float] = time.time,
) -> AdhocResult:
    """Chunk, embed and store *text* as ``ingest:<label>``.

    Args:
        data_dir: Directory holding the store.
        embedder: Anything with ``embed(texts) -> vectors``.
        label: Human-readable source label.
        text: Raw (Markdown) text.
        chunker: Markdown chunker (default bounds when omitted).
        clock: Time source in epoch seconds (for tests).
    """
    source = f"ingest:{label}"
    chunks = (chunker or MarkdownChunker()).chunk(source, text)
    if not chunks:
        return AdhocResult(source=source)

    vectors = embedder.embed([c.text for c in chunks])
    indexed_at = int(clock() * 1000)
    for i, (chunk, vector) in enumerate(zip(chunks, vectors)):
        chunk.id = f"{source}:{i}"
        chunk.vector = vector
        chunk.indexed_at = indexed_at

    store = VectorStore(data_dir)
    with store_lock(data_dir):
        kept = [c for c in store.load() if c.source != source]
        store.save(kept + chunks)

    logger.info("Ingested %d chunks as %s", len(chunks), source)
    return AdhocResult(source=source, chunks_ingested=len(chunks), total_chunks=len(kept) + len(chunks))


def ingest_file(
    data_dir: Path,
    embedder: Embedder,
    path: Path,
    label: str | None = None,
    chunker: MarkdownChunker | None = None,
) -> AdhocResult:
    """Ingest the contents of *path*; the label defaults to the file name."""
    text = path.read_text(encoding="utf-8", errors="replace")
    return ingest_text(data_dir, embedder, label or path.name, text, chunker=chunker)
