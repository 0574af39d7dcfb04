"""Tests for the dataferry CLI commands."""

import json
from datetime import datetime, timezone

import duckdb
import pandas as pd
import pytest
from typer.testing import CliRunner

from dataferry.cli.main import EXIT_CANCELLED, EXIT_ERROR, EXIT_FAILED, app
from dataferry.adapters.base.schema import ColumnDescriptor
from dataferry.adapters.csv import CSVFileAdapter
from dataferry.adapters.in_memory import InMemoryAdapter
from dataferry.cli.operations import parse_column_option, parse_mapping_options, run_transfer
from dataferry.cli.errors import MappingOptionError
from dataferry.core.models import JobPhase, ProgressSnapshot
from dataferry.core.state import JobStateStore
from dataferry.core.workflow import WorkflowOrchestrator, WorkflowPhase
from dataferry.core.models import TransferDirection

PROFILE = """
endpoints:
  warehouse:
    type: duckdb
    params:
      database: warehouse.duckdb
  export:
    type: csv
    params:
      path: out/trips.csv
  people:
    type: csv
    params:
      path: people.csv
  broken:
    type: csv
    params:
      path: broken.csv
transfer:
  progress_updates: 4
  min_batch_size: 10
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path, sample_frame):
    """Project directory with a profile, a DuckDB database and two CSV files."""
    (tmp_path / "profiles").mkdir()
    (tmp_path / "profiles" / "dev.yml").write_text(PROFILE)

    con = duckdb.connect(str(tmp_path / "warehouse.duckdb"))
    con.execute("CREATE TABLE trips (id INTEGER, city VARCHAR, fare DOUBLE)")
    con.execute(
        "INSERT INTO trips SELECT i, 'city_' || (i % 7), i * 1.5 FROM range(1, 101) t(i)"
    )
    con.execute("CREATE TABLE landing (ID INTEGER, Name VARCHAR, Price DOUBLE)")
    con.close()

    sample_frame.to_csv(tmp_path / "people.csv", index=False)
    (tmp_path / "broken.csv").write_text("ID,Name,Price\nnot-a-number,x,1.0\n")
    return tmp_path


def invoke(runner, project, *args):
    return runner.invoke(app, ["-q", *args, "--project-dir", str(project)])


def query(project, sql):
    con = duckdb.connect(str(project / "warehouse.duckdb"), read_only=True)
    try:
        return con.execute(sql).fetchall()
    finally:
        con.close()


def test_start_store_to_file(runner, project):
    result = invoke(
        runner, project, "start", "--from", "warehouse", "--to", "export", "--table", "trips"
    )

    assert result.exit_code == 0, result.output
    assert "Transferred 100 rows" in result.output
    written = pd.read_csv(project / "out" / "trips.csv")
    assert list(written.columns) == ["id", "city", "fare"]
    assert len(written) == 100


def test_start_with_column_selection(runner, project):
    result = invoke(
        runner,
        project,
        "start",
        "--from",
        "warehouse",
        "--to",
        "export",
        "-t",
        "trips",
        "--columns",
        "fare,id",
    )

    assert result.exit_code == 0, result.output
    written = pd.read_csv(project / "out" / "trips.csv")
    assert list(written.columns) == ["id", "fare"]


def test_start_file_to_store(runner, project):
    result = invoke(
        runner,
        project,
        "start",
        "--from",
        "people",
        "--to",
        "warehouse",
        "--table",
        "landing",
        "--exclude",
        "price",
    )

    assert result.exit_code == 0, result.output
    rows = query(project, "SELECT ID, Name, Price FROM landing ORDER BY ID")
    assert len(rows) == 5
    assert rows[0] == (1, "alpha", None)


def test_status_after_transfer(runner, project):
    invoke(runner, project, "start", "--from", "warehouse", "--to", "export", "-t", "trips")

    result = invoke(runner, project, "status")
    assert result.exit_code == 0
    assert "completed" in result.output

    result = invoke(runner, project, "status", "--json")
    data = json.loads(result.stdout)
    assert data["phase"] == "completed"
    assert data["rows_processed"] == 100
    assert data["batch_size"] == 25


def test_failed_transfer_exits_2(runner, project):
    result = invoke(
        runner, project, "start", "--from", "broken", "--to", "warehouse", "-t", "landing"
    )

    assert result.exit_code == EXIT_FAILED
    assert "failed" in result.output.lower()
    assert query(project, "SELECT count(*) FROM landing") == [(0,)]

    status = invoke(runner, project, "status")
    assert status.exit_code == EXIT_FAILED


def test_status_without_job(runner, project):
    result = invoke(runner, project, "status")
    assert result.exit_code == EXIT_ERROR
    assert "No transfer recorded" in result.output


def test_cancel_without_job(runner, project):
    result = invoke(runner, project, "cancel")
    assert result.exit_code == EXIT_ERROR


def test_cancel_finished_job(runner, project):
    invoke(runner, project, "start", "--from", "warehouse", "--to", "export", "-t", "trips")
    result = invoke(runner, project, "cancel")
    assert result.exit_code == EXIT_ERROR
    assert "nothing to cancel" in result.output


def test_cancel_running_job_leaves_marker(runner, project):
    store = JobStateStore(project / ".dataferry")
    store.save(
        ProgressSnapshot(
            job_id="feedbeef",
            phase=JobPhase.RUNNING,
            rows_processed=10,
            started_at=datetime.now(timezone.utc),
        )
    )

    result = invoke(runner, project, "cancel")

    assert result.exit_code == 0, result.output
    assert store.cancel_requested("feedbeef")
    assert invoke(runner, project, "status").exit_code == 0


def test_cancelled_status_exit_code(runner, project):
    JobStateStore(project / ".dataferry").save(
        ProgressSnapshot(
            job_id="feedbeef",
            phase=JobPhase.CANCELLED,
            started_at=datetime.now(timezone.utc),
            ended_at=datetime.now(timezone.utc),
        )
    )
    assert invoke(runner, project, "status").exit_code == EXIT_CANCELLED


@pytest.mark.parametrize(
    "args,message",
    [
        (["--from", "nowhere", "--to", "export", "-t", "trips"], "not found"),
        (["--from", "warehouse", "--to", "export", "-t", "ghost"], "ghost"),
        (["--from", "people", "--to", "export", "-t", "x"], "Cannot transfer"),
        (["--from", "people", "--to", "warehouse", "-t", "landing", "-m", "bad"], "Invalid"),
        (["--from", "warehouse", "--to", "export", "-t", "trips", "-c", "nope"], "nope"),
    ],
)
def test_start_user_errors(runner, project, args, message):
    result = invoke(runner, project, "start", *args)
    assert result.exit_code == EXIT_ERROR
    assert message in result.output


def test_unknown_profile(runner, project):
    result = invoke(runner, project, "relations", "warehouse", "--profile", "prod")
    assert result.exit_code == EXIT_ERROR
    assert "Profile 'prod' not found" in result.output


def test_relations(runner, project):
    result = invoke(runner, project, "relations", "warehouse")
    assert result.exit_code == 0, result.output
    assert "trips" in result.output
    assert "landing" in result.output


def test_columns(runner, project):
    result = invoke(runner, project, "columns", "warehouse", "trips")
    assert result.exit_code == 0, result.output
    assert "city" in result.output
    assert "VARCHAR" in result.output


def test_columns_of_file_default_relation(runner, project):
    result = invoke(runner, project, "columns", "people")
    assert result.exit_code == 0, result.output
    assert "price" in result.output


def test_columns_of_store_needs_table(runner, project):
    result = invoke(runner, project, "columns", "warehouse")
    assert result.exit_code == EXIT_ERROR


def test_preview(runner, project):
    result = invoke(
        runner, project, "preview", "warehouse", "trips", "--columns", "id,city", "--limit", "2"
    )
    assert result.exit_code == 0, result.output
    assert "city_1" in result.output
    assert "city_3" not in result.output


def test_version(runner):
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "dataferry" in result.output


def test_parse_mapping_options():
    assert parse_mapping_options(["a=B", " c = D "], ["e"]) == [
        ("a", "B"),
        ("c", "D"),
        ("e", None),
    ]
    with pytest.raises(MappingOptionError):
        parse_mapping_options(["a="], [])


def test_parse_column_option():
    assert parse_column_option(None) is None
    assert parse_column_option("a, b,,c") == ["a", "b", "c"]


def test_interrupt_after_completion_keeps_keyboard_interrupt(tmp_path, settings):
    source = InMemoryAdapter()
    source.add_synthetic("numbers", [ColumnDescriptor("id", "UInt32")], 300)
    orchestrator = WorkflowOrchestrator(source, CSVFileAdapter(), settings=settings)
    orchestrator.select_direction(TransferDirection.STORE_TO_FILE)
    orchestrator.connect_source({})
    orchestrator.select_relation("numbers")
    orchestrator.select_columns()
    orchestrator.connect_target({"path": str(tmp_path / "numbers.csv")})

    def interrupt_when_done(snapshot):
        if snapshot.is_terminal:
            raise KeyboardInterrupt

    try:
        with pytest.raises(KeyboardInterrupt):
            run_transfer(
                orchestrator,
                JobStateStore(tmp_path / ".dataferry"),
                poll_interval=0.05,
                on_progress=interrupt_when_done,
            )
        assert orchestrator.phase is WorkflowPhase.COMPLETED
    finally:
        orchestrator.reset(1.0)
