"""vecmem CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from vecmem.cli.index import index_cmd
from vecmem.cli.ingest import ingest_cmd
from vecmem.cli.search import search_cmd
from vecmem.cli.sessions import sessions_cmd
from vecmem.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("vecmem")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vecmem {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="vecmem",
    help=(
        "vecmem — semantic recall over a workspace and chat sessions.\n\n"
        "  vecmem index     Incrementally embed workspace Markdown files.\n"
        "  vecmem sessions  Append new chat-session messages (cron-friendly).\n"
        "  vecmem search    Rank stored chunks against a query."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """vecmem — semantic recall over a workspace and chat sessions."""


app.command("index")(index_cmd)
app.command("search")(search_cmd)
app.command("ingest")(ingest_cmd)
app.command("sessions")(sessions_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed vecmem version."""
    typer.echo(f"vecmem {_installed_version()}")


if __name__ == "__main__":
    app()
