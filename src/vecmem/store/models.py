"""Record types for the vecmem store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Chunk:
    """A bounded span of source text with its embedding.

    ``start_line``/``end_line`` are 1-based and inclusive; both are 0 for
    sources that are not line-addressable (chat chunks). ``vector`` is empty
    until the chunk has been embedded.
    """

    id: str
    source: str
    text: str
    heading: str = ""
    start_line: int = 0
    end_line: int = 0
    vector: list[float] = field(default_factory=list)
    indexed_at: int = 0  # epoch milliseconds
    meta: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "heading": self.heading,
            "text": self.text,
            "vector": self.vector,
            "indexedAt": self.indexed_at,
        }
        if self.meta is not None:
            data["meta"] = self.meta
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Chunk:
        # Stores written by older releases name the source "file".
        source = data.get("source", data.get("file", ""))
        return cls(
            id=str(data["id"]),
            source=str(source),
            text=str(data.get("text", "")),
            heading=str(data.get("heading", "")),
            start_line=int(data.get("startLine", 0)),
            end_line=int(data.get("endLine", 0)),
            vector=[float(x) for x in data.get("vector", [])],
            indexed_at=int(data.get("indexedAt", 0)),
            meta=data.get("meta"),
        )


@dataclass
class ScoredChunk:
    """A stored chunk together with its cosine similarity to a query."""

    chunk: Chunk
    score: float
