"""vecmem sessions — append new chat-session messages to the index.

Meant to be triggered by cron; runs closer together than the configured
cooldown (50 s by default) report ``skipped`` without doing any work.
"""

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
from vecmem.ingest.sessions import SessionIngester


def sessions_cmd(
    force: Annotated[
        bool,
        typer.Option("--force", help="Ignore the cooldown window."),
    ] = False,
    workspace: WorkspaceOpt = None,
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Ingest recent chat-session messages into the vector index."""
    try:
        rt = load_runtime(workspace, data_dir, verbose)
        ingester = SessionIngester(rt.data_dir, rt.embedder(), rt.config.sessions)
        with err_console.status("Ingesting sessions…"):
            result = ingester.run(force=force)
    except Exception as exc:
        fail(exc)

    emit(result.to_dict())
