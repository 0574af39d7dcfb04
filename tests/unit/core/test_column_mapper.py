"""Tests for ColumnMapper."""

import pandas as pd
import pytest

from dataferry.adapters.base.schema import ColumnDescriptor
from dataferry.adapters.data_chunk import DataChunk
from dataferry.core.mapper import ColumnMapper
from dataferry.core.models import MappingEntry
from dataferry.exceptions import (
    EmptyMapping,
    SchemaError,
    UnknownSource,
    UnknownTarget,
    ValidationError,
)


def cols(*names):
    return [ColumnDescriptor(name) for name in names]


@pytest.fixture
def mapper():
    return ColumnMapper()


def test_propose_matches_case_insensitively(mapper):
    """[id, price, date] against [ID, Price] maps two columns and leaves date unset."""
    mapping = mapper.propose_mapping(cols("id", "price", "date"), cols("ID", "Price"))

    assert [e.source.name for e in mapping] == ["id", "price", "date"]
    assert [e.target.name if e.target else None for e in mapping] == ["ID", "Price", None]

    resolved = mapper.finalize(mapping)
    assert len(resolved) == 2
    assert [(e.source.name, e.target.name) for e in resolved] == [
        ("id", "ID"),
        ("price", "Price"),
    ]


def test_propose_first_target_in_list_order_wins(mapper):
    mapping = mapper.propose_mapping(cols("name"), cols("NAME", "name", "Name"))
    assert mapping[0].target.name == "NAME"


def test_propose_never_matches_substrings(mapper):
    mapping = mapper.propose_mapping(cols("price"), cols("price_usd", "unit_price"))
    assert mapping[0].target is None


def test_propose_is_deterministic(mapper):
    sources = cols("a", "B", "c")
    targets = cols("b", "A", "C")
    assert mapper.propose_mapping(sources, targets) == mapper.propose_mapping(
        sources, targets
    )


def test_propose_rejects_duplicate_sources(mapper):
    with pytest.raises(ValidationError):
        mapper.propose_mapping(cols("id", "id"), cols("id"))


def test_set_target_returns_new_mapping(mapper):
    targets = cols("ID", "Price", "Total")
    original = mapper.propose_mapping(cols("id", "price"), targets)

    updated = mapper.set_target(original, "price", "Total", targets)

    assert updated[1].target.name == "Total"
    assert original[1].target.name == "Price"


def test_set_target_none_excludes_column(mapper):
    targets = cols("ID", "Price")
    mapping = mapper.propose_mapping(cols("id", "price"), targets)

    mapping = mapper.set_target(mapping, "id", None, targets)
    resolved = mapper.finalize(mapping)

    assert [e.source.name for e in resolved] == ["price"]


def test_set_target_unknown_source(mapper):
    mapping = mapper.propose_mapping(cols("id"), cols("id"))
    with pytest.raises(UnknownSource):
        mapper.set_target(mapping, "nope", "id", cols("id"))


def test_set_target_unknown_target(mapper):
    mapping = mapper.propose_mapping(cols("id"), cols("id"))
    with pytest.raises(UnknownTarget):
        mapper.set_target(mapping, "id", "missing", cols("id"))


def test_finalize_all_unset_raises_empty_mapping(mapper):
    mapping = mapper.propose_mapping(cols("x", "y"), cols("a"))
    with pytest.raises(EmptyMapping):
        mapper.finalize(mapping)


def test_finalize_empty_mapping_raises(mapper):
    with pytest.raises(EmptyMapping):
        mapper.finalize(())


def test_finalize_keeps_source_order(mapper):
    targets = cols("c", "b", "a")
    mapping = mapper.propose_mapping(cols("a", "b", "c"), targets)
    resolved = mapper.finalize(mapping)
    assert [e.source.name for e in resolved] == ["a", "b", "c"]


def test_finalize_checks_targets_still_exist(mapper):
    mapping = mapper.propose_mapping(cols("id", "price"), cols("id", "price"))
    with pytest.raises(SchemaError):
        mapper.finalize(mapping, cols("id"))


def test_finalize_rejects_two_sources_on_one_target(mapper):
    targets = cols("id", "total")
    mapping = mapper.propose_mapping(cols("id", "total"), targets)
    mapping = mapper.set_target(mapping, "id", "total", targets)
    with pytest.raises(ValidationError):
        mapper.finalize(mapping)


def test_revalidate_drops_vanished_targets(mapper):
    mapping = mapper.propose_mapping(cols("id", "price"), cols("id", "price"))

    new_targets = [ColumnDescriptor("id", "BIGINT")]
    revalidated = mapper.revalidate(mapping, new_targets)

    assert revalidated[0].target == ColumnDescriptor("id", "BIGINT")
    assert revalidated[1].target is None


def test_identity_mapping(mapper):
    columns = cols("a", "b")
    mapping = mapper.identity_mapping(columns)
    assert mapping == (
        MappingEntry(ColumnDescriptor("a"), ColumnDescriptor("a")),
        MappingEntry(ColumnDescriptor("b"), ColumnDescriptor("b")),
    )


def test_project_chunk_selects_and_renames(mapper):
    mapping = mapper.propose_mapping(cols("id", "price", "date"), cols("ID", "Price"))
    resolved = mapper.finalize(mapping)
    chunk = DataChunk(
        pd.DataFrame({"id": [1, 2], "price": [9.5, 3.0], "date": ["x", "y"]})
    )

    projected = mapper.project_chunk(chunk, resolved)

    assert projected.column_names == ["ID", "Price"]
    assert projected.pandas_df["ID"].tolist() == [1, 2]


def test_project_chunk_missing_column(mapper):
    resolved = mapper.finalize(mapper.identity_mapping(cols("id", "ghost")))
    chunk = DataChunk(pd.DataFrame({"id": [1]}))
    with pytest.raises(SchemaError):
        mapper.project_chunk(chunk, resolved)


def test_project_rows(mapper):
    resolved = mapper.finalize(mapper.propose_mapping(cols("a", "b"), cols("A")))
    rows = mapper.project_rows([{"a": 1, "b": 2}, {"a": 3, "b": 4}], resolved)
    assert rows == [{"A": 1}, {"A": 3}]
