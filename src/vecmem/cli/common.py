"""Shared plumbing for vecmem commands: options, runtime resolution, result output."""

from __future__ import annotations

import json
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer
from rich.console import Console

from vecmem.cli.errors import hint_for
from vecmem.config import (
    ConfigError,
    VecmemConfig,
    load_config,
    load_credentials,
    resolve_data_dir,
    resolve_workspace,
)
from vecmem.ingest.embedding import EmbeddingClient, EmbeddingError, provider_env_var
from vecmem.ingest.markdown import MarkdownChunker
from vecmem.log import setup_logging
from vecmem.store.vector_store import StoreCorruptError

err_console = Console(stderr=True)

# Failures with a known cause; anything else also gets a traceback in the result.
_EXPECTED_ERRORS: tuple[type[BaseException], ...] = (
    ConfigError,
    EmbeddingError,
    StoreCorruptError,
    OSError,
)

WorkspaceOpt = Annotated[
    Path | None,
    typer.Option("--workspace", "-w", help="Workspace root (default: auto-detect from CWD)."),
]
DataDirOpt = Annotated[
    Path | None,
    typer.Option("--data-dir", help="Directory for the store and tracker files."),
]
VerboseOpt = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Log pipeline details to stderr."),
]


@dataclass
class Runtime:
    """Resolved paths and configuration for one command invocation."""

    workspace: Path
    data_dir: Path
    config: VecmemConfig

    def embedder(self) -> EmbeddingClient:
        """Build the embedding client, loading ``.env`` credentials if needed."""
        env_var = provider_env_var(self.config.embedding.model)
        if env_var:
            load_credentials(self.workspace, env_var)
        return EmbeddingClient.from_config(self.config.embedding)

    def chunker(self) -> MarkdownChunker:
        return MarkdownChunker(
            max_chars=self.config.chunking.max_chars,
            min_chars=self.config.chunking.min_chars,
        )


def load_runtime(workspace: Path | None, data_dir: Path | None, verbose: bool) -> Runtime:
    setup_logging(verbose)
    ws = resolve_workspace(workspace)
    cfg = load_config(ws)
    return Runtime(workspace=ws, data_dir=resolve_data_dir(ws, data_dir), config=cfg)


def emit(payload: dict[str, Any]) -> None:
    """Write the single JSON result object for this command to stdout."""
    typer.echo(json.dumps(payload, ensure_ascii=False))


def fail(exc: BaseException) -> NoReturn:
    """Emit a structured error result, print a hint to stderr, exit 1."""
    payload: dict[str, Any] = {
        "status": "error",
        "message": str(exc),
        "type": type(exc).__name__,
    }
    if not isinstance(exc, _EXPECTED_ERRORS):
        payload["trace"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    emit(payload)
    err_console.print(hint_for(exc))
    raise typer.Exit(1)
