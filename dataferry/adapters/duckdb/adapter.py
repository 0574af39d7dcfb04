"""DuckDB adapter: the columnar analytical store endpoint."""

import uuid
from typing import Any, Dict, Iterator, List

import duckdb

from dataferry.adapters.base.adapter import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_PREVIEW_LIMIT,
    ConnectionHandle,
    EndpointKind,
    SchemaAdapter,
)
from dataferry.adapters.base.schema import ColumnDescriptor, Relation
from dataferry.adapters.data_chunk import DataChunk
from dataferry.exceptions import EndpointConnectionError, SchemaError, TransferError
from dataferry.logging import get_logger
from dataferry.utils.sql import format_column_list, quote_identifier, quote_schema_table

logger = get_logger(__name__)

COLUMN_TYPES_KEY = "column_types"


class DuckDBStoreAdapter(SchemaAdapter):
    """Adapter for tables in a DuckDB database.

    Tables are streamed with ``fetch_record_batch`` so that a large table is
    never materialized at once, and batches are inserted by registering the
    Arrow data as a view and casting each column to the table's declared type.
    """

    name = "duckdb"
    kind = EndpointKind.STORE

    def connect(self, credentials: Dict[str, Any]) -> ConnectionHandle:
        """Open (or reuse) a DuckDB connection.

        Credentials:
            database: Database file path, default ``:memory:``
            read_only: Open the database read-only, default False
            schema: Schema holding the tables, default ``main``
            connection: An existing ``DuckDBPyConnection`` to reuse instead
        """
        existing = credentials.get("connection")
        database = credentials.get("database", ":memory:")
        read_only = bool(credentials.get("read_only", False))

        if existing is not None:
            connection = existing
        else:
            try:
                connection = duckdb.connect(database=str(database), read_only=read_only)
            except duckdb.Error as e:
                raise EndpointConnectionError(
                    f"Cannot open database '{database}': {e}", self.name
                ) from e

        params = {
            "database": str(database) if existing is None else "<shared connection>",
            "read_only": read_only,
            "schema": credentials.get("schema", "main"),
            "owns_connection": existing is None,
        }
        logger.info("Connected to DuckDB database %s", params["database"])
        return ConnectionHandle(adapter=self.name, params=params, connection=connection)

    def disconnect(self, handle: ConnectionHandle) -> None:
        """Close the connection if this adapter opened it."""
        if handle.is_open and handle.params.get("owns_connection"):
            try:
                handle.connection.close()
            except duckdb.Error as e:
                logger.warning("Error closing DuckDB connection: %s", e)
        super().disconnect(handle)

    def list_relations(self, handle: ConnectionHandle) -> List[Relation]:
        """List base tables of the configured schema with their size estimate."""
        try:
            rows = handle.connection.execute(
                """
                SELECT table_name, estimated_size
                FROM duckdb_tables()
                WHERE schema_name = ?
                ORDER BY table_name
                """,
                [handle.params["schema"]],
            ).fetchall()
        except duckdb.Error as e:
            raise SchemaError(f"Cannot list tables: {e}", self.name) from e
        return [
            Relation(name=name, row_count=int(size) if size is not None else None, engine="duckdb")
            for name, size in rows
        ]

    def list_columns(
        self, handle: ConnectionHandle, relation_name: str
    ) -> List[ColumnDescriptor]:
        """Read the declared columns of a table in ordinal order."""
        try:
            rows = handle.connection.execute(
                """
                SELECT column_name, data_type
                FROM information_schema.columns
                WHERE table_schema = ? AND table_name = ?
                ORDER BY ordinal_position
                """,
                [handle.params["schema"], relation_name],
            ).fetchall()
        except duckdb.Error as e:
            raise SchemaError(f"Cannot describe '{relation_name}': {e}", self.name) from e
        if not rows:
            raise SchemaError(f"Table '{relation_name}' does not exist", self.name)
        return [ColumnDescriptor(name=name, type=data_type) for name, data_type in rows]

    def fetch_preview(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Select the first ``limit`` rows of ``columns``."""
        sql = (
            f"SELECT {format_column_list(columns)} "
            f"FROM {self._table(handle, relation_name)} LIMIT {int(limit)}"
        )
        try:
            table = handle.connection.execute(sql).fetch_arrow_table()
        except duckdb.Error as e:
            raise SchemaError(f"Preview of '{relation_name}' failed: {e}", self.name) from e
        return DataChunk(table).to_records()

    def iter_batches(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[DataChunk]:
        """Stream a table as Arrow record batches of at most ``batch_size`` rows."""
        sql = f"SELECT {format_column_list(columns)} FROM {self._table(handle, relation_name)}"
        logger.debug("Streaming '%s' in batches of %d", relation_name, batch_size)

        cursor = handle.connection.cursor()
        try:
            reader = cursor.execute(sql).fetch_record_batch(batch_size)
            while True:
                try:
                    record_batch = reader.read_next_batch()
                except StopIteration:
                    break
                if record_batch.num_rows:
                    yield DataChunk(record_batch)
        except duckdb.Error as e:
            raise TransferError(f"Reading '{relation_name}' failed: {e}", self.name) from e
        finally:
            cursor.close()

    def prepare_target(
        self, handle: ConnectionHandle, relation_name: str, columns: List[str]
    ) -> None:
        """Check the table exists, is writable and has every mapped column."""
        if handle.params.get("read_only"):
            raise TransferError("Database is opened read-only", self.name)

        declared = {c.name: c.type for c in self.list_columns(handle, relation_name)}
        missing = [c for c in columns if c not in declared]
        if missing:
            raise SchemaError(
                f"Table '{relation_name}' has no column(s) {missing}", self.name
            )
        handle.state.setdefault(COLUMN_TYPES_KEY, {})[relation_name] = declared

    def accept_rows(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch: DataChunk,
    ) -> None:
        """Insert one batch, casting every column to the table's declared type."""
        column_types = handle.state.get(COLUMN_TYPES_KEY, {}).get(relation_name)
        if column_types is None:
            self.prepare_target(handle, relation_name, columns)
            column_types = handle.state[COLUMN_TYPES_KEY][relation_name]

        view_name = f"_dataferry_batch_{uuid.uuid4().hex[:8]}"
        select_list = ", ".join(
            f"CAST({quote_identifier(c)} AS {column_types[c]})" for c in columns
        )
        sql = (
            f"INSERT INTO {self._table(handle, relation_name)} ({format_column_list(columns)}) "
            f"SELECT {select_list} FROM {quote_identifier(view_name)}"
        )

        cursor = handle.connection.cursor()
        try:
            cursor.register(view_name, batch.arrow_table)
            cursor.execute(sql)
        except duckdb.Error as e:
            raise TransferError(f"Insert into '{relation_name}' failed: {e}", self.name) from e
        finally:
            try:
                cursor.unregister(view_name)
            except duckdb.Error:
                logger.debug("View %s was not registered", view_name)
            cursor.close()
        logger.debug("Inserted %d rows into '%s'", len(batch), relation_name)

    def _table(self, handle: ConnectionHandle, relation_name: str) -> str:
        return quote_schema_table(relation_name, handle.params["schema"])
