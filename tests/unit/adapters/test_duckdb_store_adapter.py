"""Tests for DuckDBStoreAdapter."""

import pandas as pd
import pytest

from dataferry.adapters.data_chunk import DataChunk
from dataferry.adapters.duckdb import DuckDBStoreAdapter
from dataferry.exceptions import EndpointConnectionError, SchemaError, TransferError


@pytest.fixture
def adapter():
    return DuckDBStoreAdapter()


@pytest.fixture
def handle(adapter, duckdb_connection):
    return adapter.connect({"connection": duckdb_connection})


def test_list_relations(adapter, handle):
    relations = adapter.list_relations(handle)

    assert [r.name for r in relations] == ["landing", "trips"]
    trips = relations[1]
    assert trips.engine == "duckdb"
    assert trips.row_count == 1000


def test_list_columns(adapter, handle):
    columns = adapter.list_columns(handle, "trips")
    assert [(c.name, c.type) for c in columns] == [
        ("id", "INTEGER"),
        ("city", "VARCHAR"),
        ("fare", "DOUBLE"),
    ]


def test_list_columns_missing_table(adapter, handle):
    with pytest.raises(SchemaError):
        adapter.list_columns(handle, "nope")


def test_fetch_preview(adapter, handle):
    rows = adapter.fetch_preview(handle, "trips", ["fare", "id"], limit=3)
    assert rows == [
        {"fare": 1.5, "id": 1},
        {"fare": 3.0, "id": 2},
        {"fare": 4.5, "id": 3},
    ]


def test_iter_batches_respects_batch_size(adapter, handle):
    batches = list(adapter.iter_batches(handle, "trips", ["id", "city"], batch_size=300))

    assert sum(len(b) for b in batches) == 1000
    assert all(len(b) <= 300 for b in batches)
    assert batches[0].column_names == ["id", "city"]


def test_iter_batches_unknown_column(adapter, handle):
    with pytest.raises(TransferError):
        list(adapter.iter_batches(handle, "trips", ["ghost"]))


def test_accept_rows_casts_to_declared_types(adapter, handle, duckdb_connection):
    columns = ["ID", "Name", "Price"]
    adapter.prepare_target(handle, "landing", columns)

    chunk = DataChunk(pd.DataFrame({"ID": ["7", "8"], "Name": ["x", "y"], "Price": [1, 2]}))
    adapter.accept_rows(handle, "landing", columns, chunk)

    rows = duckdb_connection.execute("SELECT * FROM landing ORDER BY ID").fetchall()
    assert rows == [(7, "x", 1.0), (8, "y", 2.0)]


def test_accept_rows_subset_of_columns(adapter, handle, duckdb_connection):
    adapter.accept_rows(handle, "landing", ["Name"], DataChunk([{"Name": "solo"}]))
    assert duckdb_connection.execute("SELECT ID, Name FROM landing").fetchall() == [
        (None, "solo")
    ]


def test_accept_rows_bad_value_fails(adapter, handle):
    adapter.prepare_target(handle, "landing", ["ID"])
    with pytest.raises(TransferError):
        adapter.accept_rows(handle, "landing", ["ID"], DataChunk([{"ID": "not a number"}]))


def test_prepare_target_missing_column(adapter, handle):
    with pytest.raises(SchemaError):
        adapter.prepare_target(handle, "landing", ["ID", "Total"])


def test_quoted_identifiers(adapter, duckdb_connection):
    duckdb_connection.execute('CREATE TABLE "odd table" ("my col" INTEGER, "say ""hi""" VARCHAR)')
    handle = adapter.connect({"connection": duckdb_connection})
    columns = [c.name for c in adapter.list_columns(handle, "odd table")]

    adapter.accept_rows(
        handle, "odd table", columns, DataChunk([{"my col": 1, 'say "hi"': "hello"}])
    )
    assert adapter.fetch_preview(handle, "odd table", columns) == [
        {"my col": 1, 'say "hi"': "hello"}
    ]


def test_file_database_round_trip(adapter, tmp_path):
    database = str(tmp_path / "store.duckdb")
    handle = adapter.connect({"database": database})
    handle.connection.execute("CREATE TABLE t (n BIGINT)")
    adapter.accept_rows(handle, "t", ["n"], DataChunk([{"n": 1}, {"n": 2}]))
    adapter.disconnect(handle)
    assert not handle.is_open

    reopened = adapter.connect({"database": database, "read_only": True})
    assert [b.pandas_df["n"].tolist() for b in adapter.iter_batches(reopened, "t", ["n"])] == [
        [1, 2]
    ]
    with pytest.raises(TransferError):
        adapter.prepare_target(reopened, "t", ["n"])
    adapter.disconnect(reopened)


def test_shared_connection_is_not_closed(adapter, duckdb_connection):
    handle = adapter.connect({"connection": duckdb_connection})
    adapter.disconnect(handle)
    assert duckdb_connection.execute("SELECT 1").fetchone() == (1,)


def test_unreachable_database(adapter, tmp_path):
    with pytest.raises(EndpointConnectionError):
        adapter.connect({"database": str(tmp_path / "missing" / "db.duckdb")})


def test_read_only_needs_existing_file(adapter, tmp_path):
    with pytest.raises(EndpointConnectionError):
        adapter.connect({"database": str(tmp_path / "none.duckdb"), "read_only": True})


def test_mixed_column_nulls_arrive_as_null(adapter, handle, duckdb_connection):
    duckdb_connection.execute("CREATE TABLE mixed (code VARCHAR, fare DOUBLE)")
    chunk = DataChunk(pd.DataFrame({"code": [1, "x", None], "fare": [1.5, None, 2.0]}))

    adapter.accept_rows(handle, "mixed", ["code", "fare"], chunk)

    rows = duckdb_connection.execute(
        "SELECT code, fare, code IS NULL, fare IS NULL FROM mixed ORDER BY rowid"
    ).fetchall()
    assert rows == [
        ("1", 1.5, False, False),
        ("x", None, False, True),
        (None, 2.0, True, False),
    ]
