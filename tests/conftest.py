"""Pytest configuration for dataferry tests."""

from pathlib import Path
from typing import Generator

import duckdb
import pandas as pd
import pytest

from dataferry.adapters.base.schema import ColumnDescriptor
from dataferry.adapters.in_memory import InMemoryAdapter
from dataferry.core.ingestion import IngestionEngine
from dataferry.core.mapper import ColumnMapper
from dataferry.core.models import JobSpec, TransferDirection
from dataferry.core.profiles import TransferSettings


@pytest.fixture
def sample_frame() -> pd.DataFrame:
    """Small frame used as stored table contents."""
    return pd.DataFrame(
        {
            "id": [1, 2, 3, 4, 5],
            "name": ["alpha", "beta", "gamma", "delta", "epsilon"],
            "price": [10.5, 20.0, 30.25, 40.0, 50.75],
        }
    )


@pytest.fixture
def sample_csv(tmp_path: Path, sample_frame: pd.DataFrame) -> Path:
    """CSV file with the sample frame's rows."""
    path = tmp_path / "people.csv"
    sample_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def duckdb_connection() -> Generator[duckdb.DuckDBPyConnection, None, None]:
    """In-memory DuckDB database with a ``trips`` and an empty ``landing`` table."""
    con = duckdb.connect(":memory:")
    con.execute(
        "CREATE TABLE trips (id INTEGER, city VARCHAR, fare DOUBLE)"
    )
    con.execute(
        "INSERT INTO trips SELECT i, 'city_' || (i % 7), i * 1.5 FROM range(1, 1001) t(i)"
    )
    con.execute("CREATE TABLE landing (ID INTEGER, Name VARCHAR, Price DOUBLE)")
    yield con
    con.close()


@pytest.fixture
def settings() -> TransferSettings:
    return TransferSettings(reset_grace_period=2.0)


@pytest.fixture
def engine(settings: TransferSettings) -> Generator[IngestionEngine, None, None]:
    """Engine whose job is always cancelled and forgotten after the test."""
    engine = IngestionEngine(settings)
    yield engine
    engine.reset(1.0)


def synthetic_columns():
    return [
        ColumnDescriptor("id", "UInt32"),
        ColumnDescriptor("town", "String"),
        ColumnDescriptor("price", "Decimal(10,2)"),
    ]


def memory_job_spec(
    source: InMemoryAdapter,
    target: InMemoryAdapter,
    relation: str = "numbers",
    target_relation: str = "copy",
    estimate=None,
) -> JobSpec:
    """Job spec copying ``relation`` from ``source`` into ``target`` unchanged."""
    source_handle = source.connect({})
    target_handle = target.connect({})
    columns = source.list_columns(source_handle, relation)
    resolved = ColumnMapper().identity_mapping(columns)
    return JobSpec(
        direction=TransferDirection.STORE_TO_FILE,
        source_adapter=source,
        source_handle=source_handle,
        source_relation=relation,
        target_adapter=target,
        target_handle=target_handle,
        target_relation=target_relation,
        resolved_mapping=resolved,
        total_row_estimate=estimate,
    )


@pytest.fixture
def make_memory_spec():
    return memory_job_spec


@pytest.fixture
def make_synthetic_source():
    """Factory for a source holding a synthetic ``numbers`` relation."""

    def make(row_count: int = 5000, **options) -> InMemoryAdapter:
        adapter = InMemoryAdapter(**options)
        adapter.add_synthetic("numbers", synthetic_columns(), row_count)
        return adapter

    return make
