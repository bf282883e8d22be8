"""vecmem rich error hints — actionable feedback on stderr.

Every hint must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

The machine-readable error object itself goes to stdout (see
``vecmem.cli.common.fail``); these strings are for the human reading stderr.
"""

from __future__ import annotations

from vecmem.config import ConfigError
from vecmem.ingest.embedding import EmbeddingError
from vecmem.store.vector_store import StoreCorruptError


def err_no_api_key(message: str) -> str:
    """Missing provider credential.

    Example:
        API key not found for provider 'openai'. Set the OPENAI_API_KEY environment variable.
    """
    return (
        f"[red]Error:[/] {message}\n"
        "  Export it, or put it in ~/.openclaw/.env or <workspace>/.env:\n"
        "    export OPENAI_API_KEY=sk-..."
    )


def err_embedding_failed(message: str) -> str:
    """Embedding service call failed; nothing from this run was stored."""
    return (
        f"[red]Error:[/] {message}\n"
        "  No new chunks were stored. The next run will retry the same content."
    )


def err_store_corrupt(message: str) -> str:
    """Store vectors disagree on dimensionality."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Run:  vecmem index --full"
    )


def err_config(message: str) -> str:
    """Invalid or forbidden configuration value."""
    return f"[red]Error:[/] {message}"


def err_missing_input() -> str:
    """``vecmem ingest`` without content."""
    return (
        "[red]Error:[/] Nothing to ingest.\n"
        "  Use:  vecmem ingest --file PATH\n"
        "   or:  vecmem ingest --source NAME --text TEXT"
    )


def err_unexpected(message: str) -> str:
    return (
        f"[red]Error:[/] {message}\n"
        "  Re-run with --verbose for details."
    )


def hint_for(exc: BaseException) -> str:
    """Return the rich hint matching *exc*'s failure class."""
    message = str(exc)
    if isinstance(exc, EmbeddingError):
        return err_embedding_failed(message)
    if isinstance(exc, StoreCorruptError):
        return err_store_corrupt(message)
    if isinstance(exc, ConfigError):
        return err_config(message)
    if isinstance(exc, EnvironmentError) and "API key" in message:
        return err_no_api_key(message)
    return err_unexpected(message)
