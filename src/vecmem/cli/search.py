"""vecmem search — rank stored chunks against a free-text query."""

from __future__ import annotations

from typing import Annotated

import typer

from vecmem.cli.common import (
    DataDirOpt,
    VerboseOpt,
    WorkspaceOpt,
    emit,
    fail,
    load_runtime,
)
from vecmem.rag.search import search
from vecmem.store.vector_store import VectorStore


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Max results (default: search.top_k, 10)."),
    ] = None,
    min_score: Annotated[
        float | None,
        typer.Option("--min-score", help="Minimum cosine similarity (default: search.min_score, 0.3)."),
    ] = None,
    workspace: WorkspaceOpt = None,
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Semantic search over indexed workspace and session content."""
    try:
        rt = load_runtime(workspace, data_dir, verbose)
        cfg = rt.config.search
        result = search(
            query,
            VectorStore(rt.data_dir),
            rt.embedder(),
            top_k=limit if limit is not None else cfg.top_k,
            min_score=min_score if min_score is not None else cfg.min_score,
        )
    except Exception as exc:
        fail(exc)

    emit(result.to_dict(preview_chars=cfg.preview_chars))
