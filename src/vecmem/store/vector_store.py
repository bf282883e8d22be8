"""Flat JSON vector store with exact cosine search.

The whole store is one JSON array of chunk records (``vectors.json``).
There is no delete-by-key primitive: callers load the full set, filter it,
and save it back. Similarity is brute force, O(n·d) per query, which is
fine for the low thousands of chunks this store is meant for.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np

from vecmem.config import INDEX_FILE_NAME
from vecmem.store.io import read_json, write_json_atomic
from vecmem.store.models import Chunk, ScoredChunk

logger = logging.getLogger(__name__)


class StoreCorruptError(ValueError):
    """Raised when stored vectors do not share a single dimensionality."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``; 0.0 when either vector is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def check_dimensions(chunks: Sequence[Chunk]) -> int | None:
    """Return the shared vector length of *chunks* (None for an empty set).

    Raises:
        StoreCorruptError: If any chunk is unembedded or the lengths differ.
    """
    if not chunks:
        return None
    dims: dict[int, list[str]] = {}
    for chunk in chunks:
        dims.setdefault(len(chunk.vector), []).append(chunk.id)
    if 0 in dims:
        raise StoreCorruptError(
            f"{len(dims[0])} chunk(s) have no vector (e.g. '{dims[0][0]}'). Rebuild the index."
        )
    if len(dims) > 1:
        # Report the minority dimensions; the majority is assumed to be correct.
        majority = max(dims, key=lambda d: len(dims[d]))
        odd = {d: ids for d, ids in dims.items() if d != majority}
        detail = ", ".join(f"dim {d}: '{ids[0]}'" for d, ids in sorted(odd.items()))
        raise StoreCorruptError(
            f"Mixed vector dimensions in store (expected {majority}; {detail}). "
            "Rebuild the index."
        )
    return next(iter(dims))


class VectorStore:
    """Whole-file chunk store rooted in a data directory.

    Args:
        data_dir: Directory holding ``vectors.json``.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / INDEX_FILE_NAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[Chunk]:
        """Return every stored chunk in store order.

        A missing or unparseable file yields an empty list; individual
        malformed records are skipped.

        Raises:
            StoreCorruptError: If the vectors do not share one dimensionality.
        """
        raw = read_json(self.path, default=[])
        if not isinstance(raw, list):
            logger.warning("Store %s is not a JSON array — treating as empty", self.path)
            return []

        chunks: list[Chunk] = []
        for i, item in enumerate(raw):
            try:
                chunks.append(Chunk.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed store record #%d: %s", i, exc)

        check_dimensions(chunks)
        return chunks

    def save(self, chunks: Sequence[Chunk]) -> None:
        """Replace the whole store with *chunks*.

        Raises:
            StoreCorruptError: If *chunks* mix vector dimensionalities.
        """
        check_dimensions(chunks)
        write_json_atomic(self.path, [c.to_dict() for c in chunks])
        logger.debug("Saved %d chunks to %s", len(chunks), self.path)

    def similarity_search(
        self,
        query_vector: Sequence[float],
        top_k: int = 10,
        min_score: float = 0.0,
        chunks: Sequence[Chunk] | None = None,
    ) -> list[ScoredChunk]:
        """Rank stored chunks by cosine similarity to *query_vector*.

        Scores below *min_score* are dropped before truncating to *top_k*.
        Equal scores keep store order.

        Args:
            query_vector: Embedded query.
            top_k: Maximum number of results.
            min_score: Inclusive lower bound on the score.
            chunks: Pre-loaded chunks; loaded from disk when omitted.
        """
        pool = list(chunks) if chunks is not None else self.load()
        if not pool or top_k < 1:
            return []

        matrix = np.asarray([c.vector for c in pool], dtype=np.float64)
        query = np.asarray(query_vector, dtype=np.float64)
        if query.ndim != 1 or query.shape[0] != matrix.shape[1]:
            raise StoreCorruptError(
                f"Query vector has dimension {query.shape[-1]} but the store uses "
                f"{matrix.shape[1]}. Was the embedding model changed? Rebuild the index."
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)

        order = np.argsort(-scores, kind="stable")
        results: list[ScoredChunk] = []
        for idx in order:
            score = float(scores[idx])
            if score < min_score:
                continue
            results.append(ScoredChunk(chunk=pool[idx], score=score))
            if len(results) >= top_k:
                break
        return results
