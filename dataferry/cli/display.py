"""Rich display functions for the dataferry CLI."""

import json
from typing import Any, Dict, List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from dataferry.adapters.base.schema import ColumnDescriptor, Relation
from dataferry.cli.errors import DataFerryCLIError
from dataferry.core.models import JobPhase, Mapping, ProgressSnapshot
from dataferry.core.workflow import Step, StepStatus
from dataferry.exceptions import DataFerryError

console = Console()

PHASE_STYLES = {
    JobPhase.PREPARING: "cyan",
    JobPhase.RUNNING: "cyan",
    JobPhase.COMPLETED: "green",
    JobPhase.FAILED: "red",
    JobPhase.CANCELLED: "yellow",
}

STEP_MARKERS = {
    StepStatus.COMPLETED: "[green]✓[/green]",
    StepStatus.CURRENT: "[bold cyan]●[/bold cyan]",
    StepStatus.UPCOMING: "[dim]○[/dim]",
}


def display_relations(relations: List[Relation], endpoint: str) -> None:
    if not relations:
        console.print(f"📭 [yellow]No tables found in '{endpoint}'[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    table.add_column("Engine", style="dim")
    for relation in relations:
        rows = f"{relation.row_count:,}" if relation.row_count is not None else "?"
        table.add_row(escape(relation.name), rows, escape(relation.engine or ""))

    console.print(f"📋 [bold blue]Tables in '{endpoint}' ({len(relations)})[/bold blue]")
    console.print(table)


def display_columns(columns: List[ColumnDescriptor], relation: str) -> None:
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Column", style="cyan")
    table.add_column("Type", style="white")
    for column in columns:
        table.add_row(escape(column.name), escape(column.type))

    console.print(f"📋 [bold blue]Columns of '{relation}' ({len(columns)})[/bold blue]")
    console.print(table)


def display_preview(rows: Sequence[Dict[str, Any]], title: str = "Preview") -> None:
    """Show preview rows as a table."""
    if not rows:
        console.print(f"📭 [yellow]{title}: no rows[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue", title=title)
    names = list(rows[0].keys())
    for name in names:
        table.add_column(escape(name))
    for row in rows:
        cells = ("" if row.get(n) is None else escape(str(row.get(n))) for n in names)
        table.add_row(*cells)
    console.print(table)


def display_mapping(mapping: Mapping) -> None:
    table = Table(show_header=True, header_style="bold blue", title="Column mapping")
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="white")
    for entry in mapping:
        if entry.target is not None:
            target = escape(entry.target.name)
        else:
            target = "[dim]excluded[/dim]"
        table.add_row(escape(entry.source.name), target)
    console.print(table)


def display_steps(steps: List[Step]) -> None:
    line = "  ".join(f"{STEP_MARKERS[s.status]} {s.label}" for s in steps)
    console.print(line)


def create_progress() -> Progress:
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.completed:,.0f} rows"),
        TimeElapsedColumn(),
        console=console,
    )


def display_snapshot(snapshot: ProgressSnapshot) -> None:
    """Show a job snapshot as a panel."""
    style = PHASE_STYLES[snapshot.phase]
    lines = [
        f"Job: {snapshot.job_id}",
        f"Phase: [{style}]{snapshot.phase.value}[/{style}]",
    ]
    if snapshot.total_row_estimate:
        lines.append(
            f"Rows: {snapshot.rows_processed:,} / ~{snapshot.total_row_estimate:,}"
        )
    else:
        lines.append(f"Rows: {snapshot.rows_processed:,}")
    percent = snapshot.percent_complete
    if percent is not None:
        lines.append(f"Progress: {percent:.1f}%")
    lines.append(f"Batches: {snapshot.batches_committed}")
    lines.append(f"Elapsed: {snapshot.elapsed_seconds():.1f}s")
    lines.append(f"Rate: {snapshot.rows_per_second():,.0f} rows/s")
    remaining = snapshot.estimated_seconds_remaining()
    if remaining is not None:
        lines.append(f"Remaining: ~{remaining:.0f}s")
    if snapshot.last_error:
        lines.append(
            f"Error ({snapshot.error_kind}): [red]{escape(snapshot.last_error)}[/red]"
        )

    console.print(Panel("\n".join(lines), title="Transfer", border_style=style))


def display_json_output(data: Any) -> None:
    try:
        console.print(
            json.dumps(data, indent=2, ensure_ascii=False, default=str),
            markup=False,
            emoji=False,
            soft_wrap=True,
        )
    except (TypeError, ValueError) as e:
        console.print(f"❌ [red]Error formatting JSON output: {e}[/red]")


def display_cli_error(error: DataFerryCLIError) -> None:
    console.print(f"❌ [bold red]{escape(error.message)}[/bold red]")
    if error.suggestions:
        console.print("💡 [bold yellow]Suggestions:[/bold yellow]")
        for suggestion in error.suggestions:
            console.print(f"   • {escape(suggestion)}")


def display_dataferry_error(error: DataFerryError, context: str = "") -> None:
    """Show a library error with its kind."""
    context_text = f" during {context}" if context else ""
    console.print(f"❌ [bold red]{error.kind.title()} error{context_text}[/bold red]")
    console.print(f"🔍 [dim]{escape(str(error))}[/dim]")


def display_info(message: str) -> None:
    console.print(f"ℹ️  [bold blue]{message}[/bold blue]")


def display_success(message: str) -> None:
    console.print(f"✅ [bold green]{message}[/bold green]")


def display_warning(message: str) -> None:
    console.print(f"⚠️  [bold yellow]{message}[/bold yellow]")
