"""vecmem ingest pipeline — chunker, embedding client, indexers."""

from vecmem.ingest.adhoc import AdhocResult, ingest_file, ingest_text
from vecmem.ingest.embedding import EmbeddingClient, EmbeddingError
from vecmem.ingest.markdown import MarkdownChunker
from vecmem.ingest.sessions import NoiseFilter, SessionIngester, SessionIngestResult
from vecmem.ingest.workspace import IndexResult, WorkspaceIndexer

__all__ = [
    "AdhocResult",
    "EmbeddingClient",
    "EmbeddingError",
    "IndexResult",
    "MarkdownChunker",
    "NoiseFilter",
    "SessionIngestResult",
    "SessionIngester",
    "WorkspaceIndexer",
    "ingest_file",
    "ingest_text",
]
