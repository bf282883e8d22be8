"""vecmem persistence layer."""

from vecmem.store.io import read_json, store_lock, write_json_atomic
from vecmem.store.models import Chunk, ScoredChunk
from vecmem.store.trackers import FileTracker, SessionCheckpoint, SessionState, SessionTracker
from vecmem.store.vector_store import (
    StoreCorruptError,
    VectorStore,
    check_dimensions,
    cosine_similarity,
)

__all__ = [
    "Chunk",
    "FileTracker",
    "ScoredChunk",
    "SessionCheckpoint",
    "SessionState",
    "SessionTracker",
    "StoreCorruptError",
    "VectorStore",
    "check_dimensions",
    "cosine_similarity",
    "read_json",
    "store_lock",
    "write_json_atomic",
]
