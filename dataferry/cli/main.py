#!/usr/bin/env python3
"""dataferry CLI.

Commands:
    start      run a transfer between two endpoints of a profile
    status     show the last recorded job snapshot
    cancel     ask a running ``start`` to stop
    relations  list the tables of an endpoint
    columns    list the columns of a table
    preview    show the first rows of a table
    version    show version information

Exit codes: 0 success (or still running for ``status``), 1 user or
validation error, 2 transfer failed, 130 transfer cancelled.
"""

from typing import List, Optional

import typer
from rich.console import Console

from dataferry.adapters.base.adapter import EndpointKind
from dataferry.cli import display
from dataferry.cli import operations as ops
from dataferry.cli.errors import DataFerryCLIError, NoJobError
from dataferry.core.models import JobPhase, ProgressSnapshot
from dataferry.core.state import JobStateStore
from dataferry.exceptions import DataFerryError
from dataferry.logging import get_logger

logger = get_logger(__name__)
console = Console()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAILED = 2
EXIT_CANCELLED = 130

PHASE_EXIT_CODES = {
    JobPhase.PREPARING: EXIT_OK,
    JobPhase.RUNNING: EXIT_OK,
    JobPhase.COMPLETED: EXIT_OK,
    JobPhase.FAILED: EXIT_FAILED,
    JobPhase.CANCELLED: EXIT_CANCELLED,
}

app = typer.Typer(
    name="dataferry",
    help="dataferry - move data between a columnar store and flat files",
    add_completion=False,
)

PROFILE_OPTION = typer.Option("dev", "--profile", "-p", help="Profile to use")
PROJECT_OPTION = typer.Option(
    None, "--project-dir", help="Project directory (default: nearest with profiles/)"
)
STATE_OPTION = typer.Option(
    None, "--state-dir", help="Job state directory (default: <project>/.dataferry)"
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show warnings and errors"),
) -> None:
    """dataferry - move data between a columnar store and flat files.

    Examples:
        dataferry relations warehouse
        dataferry start --from warehouse --to export --table trips
        dataferry status
    """
    _setup_environment(verbose, quiet)


@app.command()
def start(
    source: str = typer.Option(..., "--from", help="Source endpoint name"),
    target: str = typer.Option(..., "--to", help="Target endpoint name"),
    table: str = typer.Option(..., "--table", "-t", help="Store-side table"),
    columns: Optional[str] = typer.Option(
        None, "--columns", "-c", help="Comma separated source columns (default: all)"
    ),
    maps: Optional[List[str]] = typer.Option(
        None, "--map", "-m", help="Override a mapping: SOURCE=TARGET (file to store)"
    ),
    excludes: Optional[List[str]] = typer.Option(
        None, "--exclude", "-x", help="Leave a source column unmapped (file to store)"
    ),
    poll_interval: float = typer.Option(
        0.2, "--poll-interval", help="Seconds between progress updates"
    ),
    profile: str = PROFILE_OPTION,
    project_dir: Optional[str] = PROJECT_OPTION,
    state_dir: Optional[str] = STATE_OPTION,
) -> None:
    """Run a transfer from one endpoint to another."""
    orchestrator = None
    try:
        project = ops.resolve_project_dir(project_dir)
        loaded = ops.load_profile_for_command(project, profile)
        source_ep = ops.resolve_endpoint(loaded, source)
        target_ep = ops.resolve_endpoint(loaded, target)
        overrides = ops.parse_mapping_options(maps or [], excludes or [])

        orchestrator, direction = ops.build_orchestrator(loaded, source_ep, target_ep)
        console.print(
            f"🚚 [bold blue]{source_ep.name} → {target_ep.name}[/bold blue] "
            f"[dim]({direction.value})[/dim]"
        )
        ops.prepare_transfer(
            orchestrator,
            direction,
            ops.endpoint_params(source_ep, project),
            ops.endpoint_params(target_ep, project),
            table,
            ops.parse_column_option(columns),
            overrides,
        )

        state = orchestrator.state
        if direction.needs_mapping:
            display.display_mapping(state.mapping)
        display.display_preview(list(state.preview_rows))
        display.display_steps(orchestrator.steps())

        store = JobStateStore(ops.resolve_state_dir(project, state_dir))
        snapshot = _run_with_progress(orchestrator, store, poll_interval)
    except KeyboardInterrupt:
        console.print("\n⚠️  [yellow]Transfer cancelled by user[/yellow]")
        raise typer.Exit(EXIT_CANCELLED)
    except DataFerryCLIError as e:
        display.display_cli_error(e)
        raise typer.Exit(EXIT_ERROR)
    except DataFerryError as e:
        display.display_dataferry_error(e, "transfer setup")
        logger.debug("Transfer setup failed", exc_info=True)
        raise typer.Exit(EXIT_ERROR)
    finally:
        if orchestrator is not None:
            orchestrator.reset()

    display.display_snapshot(snapshot)
    if snapshot.phase is JobPhase.COMPLETED:
        display.display_success(f"Transferred {snapshot.rows_processed:,} rows")
    elif snapshot.phase is JobPhase.FAILED:
        display.display_warning(
            f"Transfer failed after {snapshot.rows_processed:,} rows; "
            f"rows already written were kept"
        )
    raise typer.Exit(PHASE_EXIT_CODES[snapshot.phase])


@app.command()
def status(
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON"),
    project_dir: Optional[str] = PROJECT_OPTION,
    state_dir: Optional[str] = STATE_OPTION,
) -> None:
    """Show the last recorded transfer."""
    try:
        store_dir = ops.resolve_state_dir(ops.resolve_project_dir(project_dir), state_dir)
        snapshot = JobStateStore(store_dir).load()
        if snapshot is None:
            raise NoJobError(str(store_dir))
    except DataFerryCLIError as e:
        display.display_cli_error(e)
        raise typer.Exit(EXIT_ERROR)
    except DataFerryError as e:
        display.display_dataferry_error(e, "status check")
        raise typer.Exit(EXIT_ERROR)

    if as_json:
        display.display_json_output(snapshot.to_dict())
    else:
        display.display_snapshot(snapshot)
    raise typer.Exit(PHASE_EXIT_CODES[snapshot.phase])


@app.command()
def cancel(
    wait: float = typer.Option(
        0.0, "--wait", help="Seconds to wait for the transfer to stop"
    ),
    project_dir: Optional[str] = PROJECT_OPTION,
    state_dir: Optional[str] = STATE_OPTION,
) -> None:
    """Ask the running transfer to stop after its current batch."""
    try:
        store_dir = ops.resolve_state_dir(ops.resolve_project_dir(project_dir), state_dir)
        store = JobStateStore(store_dir)
        snapshot = store.load()
        if snapshot is None:
            raise NoJobError(str(store_dir))
    except DataFerryCLIError as e:
        display.display_cli_error(e)
        raise typer.Exit(EXIT_ERROR)
    except DataFerryError as e:
        display.display_dataferry_error(e, "cancel")
        raise typer.Exit(EXIT_ERROR)

    if snapshot.is_terminal:
        display.display_warning(
            f"Job {snapshot.job_id} already {snapshot.phase.value}; nothing to cancel"
        )
        raise typer.Exit(EXIT_ERROR)

    store.request_cancel(snapshot.job_id)
    display.display_info(f"Cancellation requested for job {snapshot.job_id}")

    if wait > 0:
        final = ops.wait_for_terminal(store, wait)
        if final is not None and final.is_terminal:
            display.display_snapshot(final)
        else:
            display.display_warning("Transfer has not stopped yet")


@app.command()
def relations(
    endpoint: str = typer.Argument(..., help="Endpoint name from the profile"),
    profile: str = PROFILE_OPTION,
    project_dir: Optional[str] = PROJECT_OPTION,
) -> None:
    """List the tables of an endpoint."""

    def run(adapter, handle):
        display.display_relations(adapter.list_relations(handle), endpoint)

    _with_endpoint(endpoint, profile, project_dir, run, "table discovery")


@app.command()
def columns(
    endpoint: str = typer.Argument(..., help="Endpoint name from the profile"),
    table: Optional[str] = typer.Argument(None, help="Table (default: the file itself)"),
    profile: str = PROFILE_OPTION,
    project_dir: Optional[str] = PROJECT_OPTION,
) -> None:
    """List the columns of a table."""

    def run(adapter, handle):
        relation = table or _default_relation(adapter, handle)
        display.display_columns(adapter.list_columns(handle, relation), relation)

    _with_endpoint(endpoint, profile, project_dir, run, "column discovery")


@app.command()
def preview(
    endpoint: str = typer.Argument(..., help="Endpoint name from the profile"),
    table: Optional[str] = typer.Argument(None, help="Table (default: the file itself)"),
    columns: Optional[str] = typer.Option(
        None, "--columns", "-c", help="Comma separated columns (default: all)"
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", min=1, help="Rows to show (default: profile preview_limit)"
    ),
    profile: str = PROFILE_OPTION,
    project_dir: Optional[str] = PROJECT_OPTION,
) -> None:
    """Show the first rows of a table."""

    def run(adapter, handle, settings):
        relation = table or _default_relation(adapter, handle)
        names = ops.parse_column_option(columns) or [
            c.name for c in adapter.list_columns(handle, relation)
        ]
        rows = adapter.fetch_preview(
            handle, relation, names, limit or settings.preview_limit
        )
        display.display_preview(rows, title=f"Preview of '{relation}'")

    _with_endpoint(endpoint, profile, project_dir, run, "preview", pass_settings=True)


@app.command()
def version() -> None:
    """Show dataferry version information."""
    import sys

    import rich

    from dataferry import __version__

    console.print("📦 [bold blue]dataferry Version Information[/bold blue]")
    console.print(f"Version: [cyan]{__version__}[/cyan]")
    console.print(f"Python: [cyan]{sys.version.split()[0]}[/cyan]")
    console.print(f"Typer: [dim]{getattr(typer, '__version__', 'unknown')}[/dim]")
    console.print(f"Rich: [dim]{getattr(rich, '__version__', 'unknown')}[/dim]")


def _run_with_progress(
    orchestrator, store: JobStateStore, poll_interval: float
) -> ProgressSnapshot:
    """Run the transfer behind a rich progress bar."""
    estimate = orchestrator.state.total_row_estimate or None
    with display.create_progress() as progress:
        task = progress.add_task("Transferring", total=estimate)

        def on_progress(snapshot: ProgressSnapshot) -> None:
            progress.update(task, completed=snapshot.rows_processed)

        snapshot = ops.run_transfer(orchestrator, store, poll_interval, on_progress)
        if snapshot.phase is JobPhase.COMPLETED:
            done = snapshot.rows_processed or 1
            progress.update(task, total=done, completed=done)
    return snapshot


def _default_relation(adapter, handle) -> str:
    if adapter.kind is not EndpointKind.FILE:
        raise DataFerryCLIError(
            "A table name is required for store endpoints",
            [f"Run 'dataferry relations' to list the available tables"],
        )
    return adapter.list_relations(handle)[0].name


def _with_endpoint(endpoint, profile, project_dir, run, context, pass_settings=False):
    """Connect to ``endpoint``, call ``run`` and always disconnect."""
    try:
        project = ops.resolve_project_dir(project_dir)
        loaded = ops.load_profile_for_command(project, profile)
        endpoint_profile = ops.resolve_endpoint(loaded, endpoint)
        adapter, handle = ops.open_endpoint(endpoint_profile, project)
        try:
            if pass_settings:
                run(adapter, handle, loaded.transfer)
            else:
                run(adapter, handle)
        finally:
            adapter.disconnect(handle)
    except DataFerryCLIError as e:
        display.display_cli_error(e)
        raise typer.Exit(EXIT_ERROR)
    except DataFerryError as e:
        display.display_dataferry_error(e, context)
        raise typer.Exit(EXIT_ERROR)


def _setup_environment(verbose: bool = False, quiet: bool = False) -> None:
    """Load the project's .env file and configure logging."""
    from dataferry.logging import configure_logging, suppress_third_party_loggers
    from dataferry.utils.env import setup_environment

    env_loaded = setup_environment()
    configure_logging(verbose=verbose, quiet=quiet)
    suppress_third_party_loggers()

    if verbose and env_loaded:
        console.print("✓ [dim]Environment variables loaded from .env file[/dim]")


def cli() -> None:
    """Entry point for the console script."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n⚠️  [yellow]Operation cancelled by user[/yellow]")
        raise SystemExit(EXIT_CANCELLED)


if __name__ == "__main__":
    cli()
