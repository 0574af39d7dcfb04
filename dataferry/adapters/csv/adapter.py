import os
import uuid
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

SCHEMA_SAMPLE_ROWS = 100
WRITE_MODES = ("replace", "append")


class CSVFileAdapter(SchemaAdapter):
    """
    Adapter for a single delimited text file.

    The file is exposed as one synthetic relation named after the file. As a
    source it streams the file in chunks with pandas; as a target it writes
    the header during ``prepare_target`` and appends one block per batch.
    """

    name = "csv"
    kind = EndpointKind.FILE

    def connect(self, credentials: Dict[str, Any]) -> ConnectionHandle:
        """Validate the file parameters and return a handle.

        Credentials:
            path: File path (required)
            delimiter: Field delimiter, default ``,``
            encoding: Text encoding, default ``utf-8``
            has_header: Whether the first line holds column names, default True
            mode: ``replace`` or ``append`` when the file is a target
        """
        path = credentials.get("path")
        if not path:
            raise EndpointConnectionError("'path' parameter is required", self.name)

        mode = str(credentials.get("mode", "replace")).lower()
        if mode not in WRITE_MODES:
            raise EndpointConnectionError(
                f"Unsupported write mode '{mode}', expected one of {WRITE_MODES}",
                self.name,
            )

        path = os.path.abspath(os.path.expanduser(str(path)))
        if os.path.isdir(path):
            raise EndpointConnectionError(f"{path} is a directory", self.name)
        if os.path.exists(path) and not os.access(path, os.R_OK):
            raise EndpointConnectionError(f"CSV file not readable: {path}", self.name)

        params = {
            "path": path,
            "delimiter": credentials.get("delimiter", ","),
            "encoding": credentials.get("encoding", "utf-8"),
            "has_header": bool(credentials.get("has_header", True)),
            "mode": mode,
        }
        logger.debug("Opened CSV endpoint %s", path)
        return ConnectionHandle(adapter=self.name, params=params, connection=path)

    def list_relations(self, handle: ConnectionHandle) -> List[Relation]:
        """Return the single synthetic relation for the file."""
        path = handle.params["path"]
        row_count = self._count_rows(handle) if os.path.exists(path) else None
        return [Relation(name=os.path.basename(path), row_count=row_count, engine="csv")]

    def list_columns(
        self, handle: ConnectionHandle, relation_name: str
    ) -> List[ColumnDescriptor]:
        """Infer column names and types from a sample of the file."""
        self._check_relation(handle, relation_name)
        try:
            sample_df = pd.read_csv(
                handle.params["path"],
                nrows=SCHEMA_SAMPLE_ROWS,
                **self._read_options(handle),
            )
        except FileNotFoundError as e:
            raise SchemaError(f"CSV file not found: {handle.params['path']}", self.name) from e
        except pd.errors.EmptyDataError as e:
            raise SchemaError("CSV file is empty", self.name) from e
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise SchemaError(f"CSV file format error: {e}", self.name) from e

        arrow_schema = pa.Schema.from_pandas(sample_df, preserve_index=False)
        return columns_from_arrow(arrow_schema)

    def fetch_preview(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Read the first ``limit`` rows of ``columns``."""
        self._check_columns(handle, relation_name, columns)
        try:
            df = pd.read_csv(
                handle.params["path"],
                nrows=limit,
                usecols=columns,
                **self._read_options(handle),
            )
        except (OSError, ValueError, pd.errors.ParserError) as e:
            raise TransferError(f"Preview failed: {e}", self.name) from e
        return DataChunk(df[columns]).to_records()

    def iter_batches(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[DataChunk]:
        """Stream the file in chunks of ``batch_size`` rows."""
        self._check_columns(handle, relation_name, columns)
        path = handle.params["path"]
        logger.debug("Streaming %s in batches of %d", path, batch_size)
        try:
            with pd.read_csv(
                path,
                chunksize=batch_size,
                usecols=columns,
                **self._read_options(handle),
            ) as reader:
                for chunk_df in reader:
                    yield DataChunk(chunk_df[columns])
        except (OSError, ValueError, pd.errors.ParserError) as e:
            raise TransferError(f"Reading {path} failed: {e}", self.name) from e

    def prepare_target(
        self, handle: ConnectionHandle, relation_name: str, columns: List[str]
    ) -> None:
        """Write the header line, or check it when appending to an existing file."""
        self._check_relation(handle, relation_name)
        path = handle.params["path"]

        if (
            handle.params["mode"] == "append"
            and os.path.exists(path)
            and os.path.getsize(path) > 0
        ):
            existing = [c.name for c in self.list_columns(handle, relation_name)]
            if existing != list(columns):
                raise SchemaError(
                    f"Cannot append columns {list(columns)} to file with columns {existing}",
                    self.name,
                )
            logger.debug("Appending to existing file %s", path)
            return

        self._replace_safe(path, pd.DataFrame(columns=list(columns)), handle)

    def accept_rows(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch: DataChunk,
    ) -> None:
        """Append one batch to the file, without header."""
        df = batch.pandas_df[list(columns)]
        try:
            df.to_csv(
                handle.params["path"],
                mode="a",
                header=False,
                index=False,
                sep=handle.params["delimiter"],
                encoding=handle.params["encoding"],
            )
        except OSError as e:
            raise TransferError(f"Writing {handle.params['path']} failed: {e}", self.name) from e
        logger.debug("Appended %d rows to %s", len(df), handle.params["path"])

    def _replace_safe(self, path: str, df: pd.DataFrame, handle: ConnectionHandle) -> None:
        """Write to a temporary file and then atomically rename it."""
        dir_path = os.path.dirname(path)
        temp_path = os.path.join(dir_path, f".tmp_{uuid.uuid4().hex[:8]}_{os.path.basename(path)}")
        try:
            os.makedirs(dir_path, exist_ok=True)
            df.to_csv(
                temp_path,
                index=False,
                header=handle.params["has_header"],
                sep=handle.params["delimiter"],
                encoding=handle.params["encoding"],
            )
            os.replace(temp_path, path)
        except OSError as e:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    logger.warning("Failed to cleanup temporary file: %s", temp_path)
            raise TransferError(f"Cannot create {path}: {e}", self.name) from e

    def _read_options(self, handle: ConnectionHandle) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "sep": handle.params["delimiter"],
            "encoding": handle.params["encoding"],
        }
        if not handle.params["has_header"]:
            options["header"] = None
            options["names"] = self._generated_names(handle)
        return options

    def _generated_names(self, handle: ConnectionHandle) -> List[str]:
        first = pd.read_csv(
            handle.params["path"],
            nrows=1,
            header=None,
            sep=handle.params["delimiter"],
            encoding=handle.params["encoding"],
        )
        return [f"column_{i + 1}" for i in range(len(first.columns))]

    def _count_rows(self, handle: ConnectionHandle) -> Optional[int]:
        try:
            with open(handle.params["path"], "r", encoding=handle.params["encoding"]) as f:
                lines = sum(1 for line in f if line.strip())
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not count rows of %s: %s", handle.params["path"], e)
            return None
        if handle.params["has_header"]:
            lines -= 1
        return max(lines, 0)

    def _check_relation(self, handle: ConnectionHandle, relation_name: str) -> None:
        expected = os.path.basename(handle.params["path"])
        if relation_name != expected:
            raise SchemaError(
                f"Unknown relation '{relation_name}', this endpoint only has '{expected}'",
                self.name,
            )

    def _check_columns(
        self, handle: ConnectionHandle, relation_name: str, columns: List[str]
    ) -> None:
        available = {c.name for c in self.list_columns(handle, relation_name)}
        missing = [c for c in columns if c not in available]
        if missing:
            raise SchemaError(f"CSV file has no column(s) {missing}", self.name)
