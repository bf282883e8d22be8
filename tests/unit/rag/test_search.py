"""Tests for semantic search over the flat store."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from vecmem.ingest.workspace import WorkspaceIndexer
from vecmem.rag.search import search
from vecmem.store.models import Chunk
from vecmem.store.vector_store import VectorStore


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _seed(data_dir: Path, embedder, texts: dict[str, str]) -> VectorStore:
    store = VectorStore(data_dir)
    store.save([
        Chunk(id=f"{name}:1", source=name, text=text, heading=name, start_line=1, end_line=1,
              vector=embedder.vector(text))
        for name, text in texts.items()
    ])
    return store


# ------------------------------------------------------------------
# Ranking
# ------------------------------------------------------------------


def test_identical_text_ranks_first_with_score_one(data_dir, fake_embedder):
    store = _seed(data_dir, fake_embedder, {
        "a.md": "alpha beta",
        "b.md": "meeting budget deploy",
        "c.md": "gamma delta",
    })

    result = search("meeting budget deploy", store, fake_embedder, top_k=3, min_score=0.0)

    assert result.hits[0].chunk.source == "b.md"
    assert result.hits[0].score == pytest.approx(1.0)
    assert result.total_indexed == 3


def test_min_score_above_everything(data_dir, fake_embedder):
    store = _seed(data_dir, fake_embedder, {"a.md": "alpha", "b.md": "beta"})

    result = search("gamma", store, fake_embedder, min_score=0.99)

    assert result.hits == []
    assert result.status == "ok"
    assert not result.is_empty_store
    assert result.to_dict()["message"] == "No results above min score 0.99"


def test_empty_store_distinct_and_no_embedding(data_dir, fake_embedder):
    result = search("anything", VectorStore(data_dir), fake_embedder)

    assert result.is_empty_store
    assert result.to_dict() == {
        "status": "empty",
        "query": "anything",
        "results": [],
        "totalIndexed": 0,
        "message": "Index empty. Run 'vecmem index' first.",
    }
    assert fake_embedder.calls == []


def test_result_dict_shape_and_preview(data_dir, fake_embedder):
    store = _seed(data_dir, fake_embedder, {"long.md": "project " * 100})

    payload = search("project", store, fake_embedder).to_dict(preview_chars=20)

    hit = payload["results"][0]
    assert set(hit) == {"id", "source", "startLine", "endLine", "heading", "score", "preview"}
    assert hit["preview"] == ("project " * 100)[:20]
    assert "message" not in payload


# ------------------------------------------------------------------
# End-to-end
# ------------------------------------------------------------------


def test_notes_details_outranks_intro(workspace, data_dir, fake_embedder):
    notes = workspace / "notes.md"
    notes.write_text(
        "# Intro\nHello world, this is a test note.\n\n# Details\nMore content here about the project.",
        encoding="utf-8",
    )
    os.utime(notes, (1_000.0, 1_000.0))
    WorkspaceIndexer(workspace, data_dir, fake_embedder, ["*.md"]).run()

    result = search("project details", VectorStore(data_dir), fake_embedder, min_score=0.0)

    headings = [hit.chunk.heading for hit in result.hits]
    assert headings.index("Details") < headings.index("Intro")
