"""Console rendering and progress helpers for entry-import CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .mapping import FIELD_OPTIONS
from .models import EntryRecord, ImportResult, ImportStatus, ParsedTable
from .utils.events import BatchProgress, ParseProgress

PREVIEW_ENTRIES = 5
SAMPLE_WIDTH = 40

console = Console()

_FIELD_LABELS = {option.value.value: option.label for option in FIELD_OPTIONS}


def _echo(message: str) -> None:
    console.print(message)


def _truncate(value: Any, width: int = SAMPLE_WIDTH) -> str:
    text = "" if value is None else str(value)
    return text if len(text) <= width else text[: width - 1] + "…"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]entry-import[/bold green]",
        subtitle="[dim]bulk entry import[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_mapping(mapping: Dict[str, str], table: Optional[ParsedTable] = None) -> None:
    """Column -> field table with a sample value from the first preview row."""
    sample = table.rows[0] if table is not None and table.rows else None

    grid = Table(title="Column mapping", title_justify="left", show_edge=False)
    grid.add_column("Column", style="bold")
    grid.add_column("Field")
    grid.add_column("Sample", style="dim")

    for header, value in mapping.items():
        label = _FIELD_LABELS.get(value, value)
        style = "dim" if value == "skip" else "green"
        grid.add_row(header, f"[{style}]{label}[/{style}]", _truncate(sample.get(header) if sample else None))

    console.print(grid)


def render_validation(
    entries: Sequence[EntryRecord],
    invalid_count: int,
    limit: int = PREVIEW_ENTRIES,
) -> None:
    """Valid/invalid counts plus the first few entries."""
    _echo(
        f"[green]{len(entries)} valid[/green] entries, "
        f"[{'red' if invalid_count else 'dim'}]{invalid_count} invalid[/] rows"
    )
    if not entries:
        return

    grid = Table(show_edge=False)
    grid.add_column("External ID", style="bold")
    grid.add_column("Display Name")
    grid.add_column("External URL", style="cyan")
    grid.add_column("Extra", justify="right", style="dim")

    for entry in entries[:limit]:
        grid.add_row(
            _truncate(entry.external_id),
            _truncate(entry.display_name) or "-",
            _truncate(entry.external_url) or "-",
            str(len(entry.raw_data or {})),
        )
    console.print(grid)
    if len(entries) > limit:
        _echo(f"[dim]... and {len(entries) - limit} more[/dim]")


class ParseProgressDisplay:
    """Progress bar for a file parse. Percent is advisory."""

    def __init__(self, filename: str):
        self.filename = filename
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[rows]} rows"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
            transient=True,
        )
        self._task_id: Optional[TaskID] = None

    def start(self) -> None:
        if self._task_id is not None:
            return
        self._progress.start()
        self._task_id = self._progress.add_task("parse", label=self.filename[:60], total=100, rows=0)

    def update(self, progress: ParseProgress) -> None:
        if self._task_id is None:
            self.start()
        self._progress.update(self._task_id, completed=progress.percent, rows=progress.rows_processed)

    def complete(self, table: ParsedTable) -> None:
        self._stop()
        preview = f" (showing {len(table.rows)})" if table.is_truncated else ""
        _echo(
            f"[green]Parsed:[/green] {self.filename} - "
            f"{len(table.headers)} columns, {table.total_rows} rows{preview}"
        )

    def fail(self, error: Optional[str]) -> None:
        self._stop()
        suffix = f" - {error}" if error else ""
        _echo(f"[red]Failed:[/red] {self.filename}{suffix}")

    def _stop(self) -> None:
        if self._task_id is not None:
            self._progress.stop()
            self._task_id = None


class ImportProgressDisplay:
    """Event-based console display for a bulk import job."""

    def __init__(self, total_entries: int, total_batches: int):
        self.total_entries = total_entries
        self.total_batches = total_batches
        self._stats: Dict[str, int] = {"committed": 0, "failed": 0, "skipped": 0, "created": 0}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold green]Importing", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[detail]}"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )
        self._task_id: Optional[TaskID] = None

    def _detail(self) -> str:
        return (
            f"batches={self._stats['committed'] + self._stats['skipped']}/{self.total_batches} "
            f"created={self._stats['created']}"
        )

    def _emit_timeline(self, status: str, batch: BatchProgress) -> None:
        stamp = time.strftime("%H:%M:%S")
        palette = {"DONE": "green", "FAIL": "red", "SKIP": "cyan"}
        color = palette.get(status, "white")
        error_label = f" cause={batch.error}" if batch.error else ""
        created_label = f" created={batch.created}" if status == "DONE" else ""
        self._progress.console.print(
            f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] "
            f"batch {batch.index + 1}/{self.total_batches}: {batch.size} entries{created_label}{error_label}"
        )

    def start(self) -> None:
        if self._task_id is not None:
            return
        _echo(f"[cyan]Importing[/cyan] {self.total_entries} entries in {self.total_batches} batch(es)")
        self._progress.start()
        self._task_id = self._progress.add_task("import", total=100, detail=self._detail())

    def on_progress(self, percent: int) -> None:
        if self._task_id is None:
            self.start()
        self._progress.update(self._task_id, completed=percent, detail=self._detail())

    def on_batch_complete(self, batch: BatchProgress) -> None:
        self._stats["committed"] += 1
        self._stats["created"] += batch.created
        self._emit_timeline("DONE", batch)

    def on_batch_skipped(self, batch: BatchProgress) -> None:
        self._stats["skipped"] += 1
        self._emit_timeline("SKIP", batch)

    def on_batch_fail(self, batch: BatchProgress) -> None:
        self._stats["failed"] += 1
        self._emit_timeline("FAIL", batch)

    def on_finish(self, result: ImportResult) -> None:
        if self._task_id is not None:
            self._progress.stop()
            self._task_id = None

        summary = (
            f"created={result.created} batches={result.committed_batches}/{result.total_batches} "
            f"skipped={result.skipped_batches}"
        )
        if result.status == ImportStatus.SUCCESS:
            _echo(f"[bold green]Finished[/bold green] {summary}")
        elif result.status == ImportStatus.PARTIAL:
            _echo(f"[bold yellow]Partially imported[/bold yellow] {summary}")
            label = "-" if result.failed_batch is None else result.failed_batch + 1
            _echo(f"[yellow]Stopped at batch {label}:[/yellow] {result.error}")
            _echo("[dim]Committed batches were not rolled back.[/dim]")
        else:
            _echo(f"[bold red]Import failed[/bold red] {summary}")
            _echo(f"[red]Error:[/red] {result.error}")
