"""vecmem status command.

Shows where the index lives and what is in it: chunk counts per source kind,
vector dimensionality, tracked files and sessions, last session run.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vecmem.cli.common import DataDirOpt, VerboseOpt, WorkspaceOpt, fail, load_runtime
from vecmem.store.models import Chunk
from vecmem.store.trackers import FileTracker, SessionTracker
from vecmem.store.vector_store import StoreCorruptError, VectorStore, check_dimensions

console = Console()


def status_cmd(
    workspace: WorkspaceOpt = None,
    data_dir: DataDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Show index location, size, and tracker state."""
    try:
        rt = load_runtime(workspace, data_dir, verbose)
    except Exception as exc:
        fail(exc)

    _show_location_panel(rt.workspace, rt.data_dir, rt.config.embedding.model)
    _show_index_panel(rt.data_dir)
    _show_tracker_panel(rt.data_dir)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_location_panel(workspace: Path, data_dir: Path, model: str) -> None:
    lines = [
        f"Workspace:  [bold]{workspace}[/]",
        f"Data dir:   {data_dir}",
        f"Model:      {model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]vecmem[/]", expand=False))


def _show_index_panel(data_dir: Path) -> None:
    store = VectorStore(data_dir)
    if not store.exists():
        console.print(
            Panel(
                "[yellow]No index yet.[/]\n"
                "  Run:  vecmem index",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    try:
        chunks = store.load()
        dimension = check_dimensions(chunks)
    except StoreCorruptError as exc:
        console.print(
            Panel(
                f"[red]✗ Corrupt:[/] {exc}\n"
                "  Run:  vecmem index --full",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Kind", style="bold")
    table.add_column("Chunks", justify="right")
    for kind, count in sorted(_count_by_kind(chunks).items()):
        table.add_row(kind, f"{count:,}")

    size_mb = store.path.stat().st_size / (1024 * 1024)
    title = (
        f"[bold]Index[/] [dim]({len(chunks):,} chunks · dim {dimension or '-'} · {size_mb:.1f} MB)[/]"
    )
    console.print(Panel(table, title=title, expand=False))


def _show_tracker_panel(data_dir: Path) -> None:
    files = FileTracker(data_dir).load()
    state = SessionTracker(data_dir).load()

    last_run = (
        datetime.fromtimestamp(state.last_run).strftime("%Y-%m-%d %H:%M:%S")
        if state.last_run
        else "never"
    )
    lines = [
        f"Tracked files:     [bold]{len(files)}[/]",
        f"Tracked sessions:  [bold]{len(state.files)}[/]",
        f"Last session run:  [dim]{last_run}[/]",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Trackers[/]", expand=False))


def _count_by_kind(chunks: list[Chunk]) -> Counter[str]:
    kinds: Counter[str] = Counter()
    for chunk in chunks:
        prefix, sep, _ = chunk.source.partition(":")
        kinds[prefix if sep and prefix in ("session", "ingest") else "file"] += 1
    return kinds
