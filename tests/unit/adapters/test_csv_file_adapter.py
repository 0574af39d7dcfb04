"""Tests for CSVFileAdapter."""

import os

import pandas as pd
import pytest

from dataferry.adapters.csv import CSVFileAdapter
from dataferry.adapters.data_chunk import DataChunk
from dataferry.exceptions import EndpointConnectionError, SchemaError, TransferError


@pytest.fixture
def adapter():
    return CSVFileAdapter()


def test_connect_requires_path(adapter):
    with pytest.raises(EndpointConnectionError):
        adapter.connect({})


def test_connect_rejects_directory(adapter, tmp_path):
    with pytest.raises(EndpointConnectionError):
        adapter.connect({"path": str(tmp_path)})


def test_connect_rejects_unknown_mode(adapter, tmp_path):
    with pytest.raises(EndpointConnectionError):
        adapter.connect({"path": str(tmp_path / "x.csv"), "mode": "upsert"})


def test_single_relation_named_after_file(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    relations = adapter.list_relations(handle)

    assert len(relations) == 1
    assert relations[0].name == "people.csv"
    assert relations[0].row_count == 5
    assert relations[0].engine == "csv"


def test_missing_file_has_unknown_row_count(adapter, tmp_path):
    handle = adapter.connect({"path": str(tmp_path / "new.csv")})
    assert adapter.list_relations(handle)[0].row_count is None


def test_list_columns_infers_types(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    columns = adapter.list_columns(handle, "people.csv")

    assert [c.name for c in columns] == ["id", "name", "price"]
    assert columns[0].type == "int64"
    assert columns[2].type == "double"


def test_list_columns_unknown_relation(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    with pytest.raises(SchemaError):
        adapter.list_columns(handle, "other.csv")


def test_list_columns_empty_file(adapter, tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("")
    handle = adapter.connect({"path": str(path)})
    with pytest.raises(SchemaError):
        adapter.list_columns(handle, "empty.csv")


def test_headerless_file_gets_generated_names(adapter, tmp_path):
    path = tmp_path / "raw.csv"
    path.write_text("1;a\n2;b\n")
    handle = adapter.connect({"path": str(path), "delimiter": ";", "has_header": False})

    assert [c.name for c in adapter.list_columns(handle, "raw.csv")] == [
        "column_1",
        "column_2",
    ]
    assert adapter.list_relations(handle)[0].row_count == 2


def test_fetch_preview_in_requested_order(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    rows = adapter.fetch_preview(handle, "people.csv", ["price", "id"], limit=2)

    assert rows == [{"price": 10.5, "id": 1}, {"price": 20.0, "id": 2}]
    assert list(rows[0]) == ["price", "id"]


def test_fetch_preview_unknown_column(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    with pytest.raises(SchemaError):
        adapter.fetch_preview(handle, "people.csv", ["ghost"])


def test_iter_batches(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    batches = list(adapter.iter_batches(handle, "people.csv", ["name"], batch_size=2))

    assert [len(b) for b in batches] == [2, 2, 1]
    assert batches[0].column_names == ["name"]


def test_stream_rows_stops_when_callback_declines(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    seen = []

    def callback(chunk):
        seen.append(len(chunk))
        return False

    delivered = adapter.stream_rows(handle, "people.csv", ["id"], callback, batch_size=2)
    assert delivered == 1
    assert seen == [2]


def test_write_replaces_file(adapter, tmp_path):
    path = tmp_path / "out" / "result.csv"
    handle = adapter.connect({"path": str(path)})

    adapter.prepare_target(handle, "result.csv", ["a", "b"])
    assert path.read_text().strip() == "a,b"

    adapter.accept_rows(
        handle, "result.csv", ["a", "b"], DataChunk([{"a": 1, "b": "x"}, {"a": 2, "b": "y"}])
    )
    adapter.accept_rows(handle, "result.csv", ["a", "b"], DataChunk([{"a": 3, "b": "z"}]))

    df = pd.read_csv(path)
    assert df["a"].tolist() == [1, 2, 3]
    assert [name for name in os.listdir(path.parent) if name.startswith(".tmp_")] == []


def test_append_checks_header(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv), "mode": "append"})
    with pytest.raises(SchemaError):
        adapter.prepare_target(handle, "people.csv", ["id", "name"])

    adapter.prepare_target(handle, "people.csv", ["id", "name", "price"])
    adapter.accept_rows(
        handle,
        "people.csv",
        ["id", "name", "price"],
        DataChunk([{"id": 6, "name": "zeta", "price": 1.0}]),
    )
    assert len(pd.read_csv(sample_csv)) == 6


def test_append_to_empty_file_writes_header(adapter, tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("")
    handle = adapter.connect({"path": str(path), "mode": "append"})

    adapter.prepare_target(handle, "empty.csv", ["a", "b"])
    adapter.accept_rows(handle, "empty.csv", ["a", "b"], DataChunk([{"a": 1, "b": "x"}]))

    df = pd.read_csv(path)
    assert list(df.columns) == ["a", "b"]
    assert df["a"].tolist() == [1]


def test_replace_mode_truncates(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    adapter.prepare_target(handle, "people.csv", ["id"])
    assert adapter.list_relations(handle)[0].row_count == 0


def test_reading_vanished_file_fails(adapter, sample_csv):
    handle = adapter.connect({"path": str(sample_csv)})
    sample_csv.unlink()
    with pytest.raises((SchemaError, TransferError)):
        list(adapter.iter_batches(handle, "people.csv", ["id"]))
