"""vecmem ingest — add ad-hoc text or a single file under an ``ingest:`` source."""

from __future__ import annotations

from pathlib import Path
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
from vecmem.cli.errors import err_missing_input
from vecmem.ingest.adhoc import ingest_file, ingest_text

_DEFAULT_LABEL = "adhoc"


def ingest_cmd(
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", exists=True, dir_okay=False, help="File to ingest."),
    ] = None,
    text: Annotated[
        str | None,
        typer.Option("--text", "-t", help="Raw text to ingest."),
    ] = None,
    source: Annotated[
        str | None,
        typer.Option("--source", "-s", help="Source label (default: file name, or 'adhoc')."),
    ] = None,
    workspace: WorkspaceOpt = None,
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Ingest ad-hoc content into the vector index.

    Re-ingesting with the same source label replaces that label's chunks.
    """
    if file is None and not text:
        emit({"status": "error", "message": "No --file or --text given"})
        err_console.print(err_missing_input())
        raise typer.Exit(1)

    try:
        rt = load_runtime(workspace, data_dir, verbose)
        if file is not None:
            result = ingest_file(rt.data_dir, rt.embedder(), file, label=source, chunker=rt.chunker())
        else:
            result = ingest_text(
                rt.data_dir, rt.embedder(), source or _DEFAULT_LABEL, text or "", chunker=rt.chunker()
            )
    except Exception as exc:
        fail(exc)

    emit(result.to_dict())
