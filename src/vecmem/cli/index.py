"""vecmem index — incremental (or full) workspace indexing."""

from __future__ import annotations

from typing import Annotated

import typer

from vecmem.cli.common import (
    DataDirOpt,
    VerboseOpt,
    WorkspaceOpt,
    emit,
    err_console,
    fail,
    load_runtime,
)
from vecmem.ingest.workspace import WorkspaceIndexer


def index_cmd(
    full: Annotated[
        bool,
        typer.Option("--full", help="Full rebuild: ignore tracked mtimes and re-embed every file."),
    ] = False,
    workspace: WorkspaceOpt = None,
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Index workspace Markdown files for semantic search."""
    try:
        rt = load_runtime(workspace, data_dir, verbose)
        indexer = WorkspaceIndexer(
            rt.workspace,
            rt.data_dir,
            rt.embedder(),
            rt.config.index.patterns,
            chunker=rt.chunker(),
        )
        with err_console.status("Indexing workspace…"):
            result = indexer.run(full=full)
    except Exception as exc:
        fail(exc)

    emit(result.to_dict())
