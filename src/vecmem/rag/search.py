"""Semantic search over the flat store.

The query is embedded once and compared against every stored vector. An empty
store short-circuits before any embedding call and is reported with status
``empty``, distinct from a populated store with nothing above ``min_score``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from vecmem.ingest.embedding import Embedder
from vecmem.store.models import ScoredChunk
from vecmem.store.vector_store import VectorStore

_EMPTY_MESSAGE = "Index empty. Run 'vecmem index' first."


@dataclass
class SearchResult:
    """Ranked hits plus enough context to tell "empty store" from "no match".

    Attributes:
        query: The raw query text.
        hits: Best-first scored chunks.
        total_indexed: Number of chunks in the store.
        status: ``ok`` or ``empty``.
        message: Explanation when there are no hits.
    """

    query: str
    hits: list[ScoredChunk] = field(default_factory=list)
    total_indexed: int = 0
    status: str = "ok"
    message: str | None = None

    @property
    def is_empty_store(self) -> bool:
        return self.status == "empty"

    def to_dict(self, preview_chars: int = 300) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "query": self.query,
            "results": [
                {
                    "id": hit.chunk.id,
                    "source": hit.chunk.source,
                    "startLine": hit.chunk.start_line,
                    "endLine": hit.chunk.end_line,
                    "heading": hit.chunk.heading,
                    "score": round(hit.score, 6),
                    "preview": hit.chunk.text[:preview_chars],
                }
                for hit in self.hits
            ],
            "totalIndexed": self.total_indexed,
        }
        if self.message:
            data["message"] = self.message
        return data


def search(
    query: str,
    store: VectorStore,
    embedder: Embedder,
    top_k: int = 10,
    min_score: float = 0.3,
) -> SearchResult:
    """Embed *query* and return the *top_k* chunks scoring at least *min_score*.

    Raises:
        StoreCorruptError: If the store mixes dimensionalities or the query
            dimension does not match the store.
    """
    chunks = store.load()
    if not chunks:
        return SearchResult(query=query, status="empty", message=_EMPTY_MESSAGE)

    query_vector = embedder.embed([query])[0]
    hits = store.similarity_search(query_vector, top_k=top_k, min_score=min_score, chunks=chunks)
    result = SearchResult(query=query, hits=hits, total_indexed=len(chunks))
    if not hits:
        result.message = f"No results above min score {min_score}"
    return result
