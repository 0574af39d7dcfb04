from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterator, List, Optional

import pandas as pd
import pyarrow as pa

from dataferry.adapters.base.adapter import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_PREVIEW_LIMIT,
    ConnectionHandle,
    EndpointKind,
    SchemaAdapter,
)
from dataferry.adapters.base.schema import ColumnDescriptor, Relation, columns_from_arrow
from dataferry.adapters.data_chunk import DataChunk
from dataferry.exceptions import EndpointConnectionError, SchemaError, TransferError
from dataferry.logging import get_logger

logger = get_logger(__name__)

CONNECTION_LOST = (
    "Connection lost during data transfer. "
    "Please check your network connection and try again."
)


@dataclass(frozen=True)
class SyntheticRelation:
    """A relation whose rows are generated on demand instead of stored."""

    columns: List[ColumnDescriptor]
    row_count: int
    engine: str = "synthetic"


def _s(name: str, type_: str = "String") -> ColumnDescriptor:
    return ColumnDescriptor(name=name, type=type_)


SAMPLE_CATALOG: Dict[str, SyntheticRelation] = {
    "uk_price_paid": SyntheticRelation(
        columns=[
            _s("transaction_id"),
            _s("price", "Decimal(10,2)"),
            _s("date_of_transfer", "Date"),
            _s("postcode"),
            _s("property_type"),
            _s("old_new"),
            _s("duration"),
            _s("town"),
            _s("district"),
            _s("county"),
            _s("country"),
        ],
        row_count=26987992,
        engine="MergeTree",
    ),
    "ontime": SyntheticRelation(
        columns=[
            _s("year", "UInt16"),
            _s("quarter", "UInt8"),
            _s("month", "UInt8"),
            _s("day_of_month", "UInt8"),
            _s("day_of_week", "UInt8"),
            _s("flight_date", "Date"),
            _s("carrier"),
            _s("tail_number"),
            _s("flight_number"),
            _s("origin"),
            _s("destination"),
            _s("departure_delay", "Int16"),
            _s("arrival_delay", "Int16"),
            _s("cancelled", "UInt8"),
            _s("distance", "UInt16"),
        ],
        row_count=188884765,
        engine="MergeTree",
    ),
}


def sample_value(column: ColumnDescriptor, row_index: int) -> Any:
    """Deterministic sample value for ``column`` at ``row_index``."""
    type_name = column.type.lower()
    if type_name.startswith("uint"):
        return (row_index * 7 + len(column.name)) % 100
    if type_name.startswith("int"):
        return (row_index * 13 + len(column.name)) % 200 - 100
    if type_name.startswith("decimal") or type_name in ("float", "double", "number"):
        return round(((row_index + 1) * 1234.56) % 1000000, 2)
    if type_name == "date":
        return (date(2024, 1, 1) + timedelta(days=row_index % 365)).isoformat()
    if type_name == "string":
        return f"Sample-{column.name}-{row_index + 1}"
    return f"Value-{row_index + 1}"


def generate_rows(
    columns: List[ColumnDescriptor], start: int, count: int
) -> pd.DataFrame:
    """Generate ``count`` sample rows starting at row ``start``."""
    data = {
        column.name: [sample_value(column, i) for i in range(start, start + count)]
        for column in columns
    }
    return pd.DataFrame(data, columns=[c.name for c in columns])


class InMemoryAdapter(SchemaAdapter):
    """
    Adapter for data held in memory, primarily for testing.

    Holds pandas DataFrames and synthetic relations, and can inject read
    failures, write failures and per-batch latency to exercise the
    ingestion engine's failure and cancellation paths.
    """

    name = "memory"

    def __init__(
        self,
        tables: Optional[Dict[str, pd.DataFrame]] = None,
        synthetic: Optional[Dict[str, SyntheticRelation]] = None,
        fail_after_rows: Optional[int] = None,
        fail_on_write_after_rows: Optional[int] = None,
        batch_delay: float = 0.0,
        kind: EndpointKind = EndpointKind.STORE,
    ):
        self.tables: Dict[str, pd.DataFrame] = dict(tables or {})
        self.synthetic: Dict[str, SyntheticRelation] = dict(synthetic or {})
        self.fail_after_rows = fail_after_rows
        self.fail_on_write_after_rows = fail_on_write_after_rows
        self.batch_delay = batch_delay
        self.kind = kind
        self.accepted_batches: Dict[str, List[int]] = {}

    def add_table(self, name: str, df: pd.DataFrame) -> None:
        """Register a stored table."""
        self.tables[name] = df

    def add_synthetic(
        self,
        name: str,
        columns: List[ColumnDescriptor],
        row_count: int,
        engine: str = "synthetic",
    ) -> None:
        """Register a generated relation of ``row_count`` rows."""
        self.synthetic[name] = SyntheticRelation(list(columns), row_count, engine)

    def connect(self, credentials: Dict[str, Any]) -> ConnectionHandle:
        """Return a handle to this adapter's tables.

        Credentials:
            catalog: ``sample`` loads the sample catalog
            fail: Simulate an authentication failure when true
        """
        if credentials.get("fail"):
            raise EndpointConnectionError("Authentication failed", self.name)
        if credentials.get("catalog") == "sample":
            for name, relation in SAMPLE_CATALOG.items():
                self.synthetic.setdefault(name, relation)
        return ConnectionHandle(
            adapter=self.name,
            params=self.public_params(credentials),
            connection=self.tables,
        )

    def list_relations(self, handle: ConnectionHandle) -> List[Relation]:
        """List stored tables followed by synthetic relations."""
        relations = [
            Relation(name=name, row_count=len(df), engine="memory")
            for name, df in self.tables.items()
        ]
        relations.extend(
            Relation(name=name, row_count=rel.row_count, engine=rel.engine)
            for name, rel in self.synthetic.items()
        )
        return relations

    def list_columns(
        self, handle: ConnectionHandle, relation_name: str
    ) -> List[ColumnDescriptor]:
        """Get the columns of a table or synthetic relation."""
        if relation_name in self.tables:
            arrow_schema = pa.Schema.from_pandas(
                self.tables[relation_name], preserve_index=False
            )
            return columns_from_arrow(arrow_schema)
        if relation_name in self.synthetic:
            return list(self.synthetic[relation_name].columns)
        raise SchemaError(f"Table '{relation_name}' not found in memory", self.name)

    def fetch_preview(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Return the first ``limit`` rows."""
        return self._slice(relation_name, columns, 0, limit).to_records()

    def iter_batches(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[DataChunk]:
        """Yield consecutive slices of the relation."""
        total = self._row_count(relation_name)
        produced = 0
        while produced < total:
            if self.fail_after_rows is not None and produced > self.fail_after_rows:
                raise TransferError(CONNECTION_LOST, self.name)
            if self.batch_delay:
                time.sleep(self.batch_delay)
            chunk = self._slice(relation_name, columns, produced, batch_size)
            if not len(chunk):
                break
            produced += len(chunk)
            yield chunk

    def prepare_target(
        self, handle: ConnectionHandle, relation_name: str, columns: List[str]
    ) -> None:
        """Create the table when missing, otherwise check its columns."""
        if relation_name in self.synthetic:
            raise SchemaError(
                f"Synthetic relation '{relation_name}' cannot be written", self.name
            )
        if relation_name not in self.tables:
            self.tables[relation_name] = pd.DataFrame(columns=list(columns))
            return
        super().prepare_target(handle, relation_name, columns)

    def accept_rows(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch: DataChunk,
    ) -> None:
        """Append the batch to the named table, creating it if needed."""
        received = self.accepted_batches.setdefault(relation_name, [])
        already = sum(received)
        if (
            self.fail_on_write_after_rows is not None
            and already + len(batch) > self.fail_on_write_after_rows
        ):
            raise TransferError(CONNECTION_LOST, self.name)
        if self.batch_delay:
            time.sleep(self.batch_delay)

        df = batch.pandas_df[list(columns)]
        existing = self.tables.get(relation_name)
        if existing is None or existing.empty:
            self.tables[relation_name] = df.reset_index(drop=True)
        else:
            self.tables[relation_name] = pd.concat([existing, df], ignore_index=True)
        received.append(len(batch))

    def _row_count(self, relation_name: str) -> int:
        if relation_name in self.tables:
            return len(self.tables[relation_name])
        if relation_name in self.synthetic:
            return self.synthetic[relation_name].row_count
        raise SchemaError(f"Table '{relation_name}' not found in memory", self.name)

    def _slice(
        self, relation_name: str, columns: List[str], start: int, count: int
    ) -> DataChunk:
        if relation_name in self.tables:
            df = self.tables[relation_name]
            missing = [c for c in columns if c not in df.columns]
            if missing:
                raise SchemaError(f"Table '{relation_name}' has no column(s) {missing}", self.name)
            return DataChunk(df[columns].iloc[start : start + count])

        relation = self.synthetic.get(relation_name)
        if relation is None:
            raise SchemaError(f"Table '{relation_name}' not found in memory", self.name)
        by_name = {c.name: c for c in relation.columns}
        missing = [c for c in columns if c not in by_name]
        if missing:
            raise SchemaError(f"Table '{relation_name}' has no column(s) {missing}", self.name)
        count = max(0, min(count, relation.row_count - start))
        return DataChunk(generate_rows([by_name[c] for c in columns], start, count))
