from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from dataferry.adapters.base.schema import ColumnDescriptor, Relation
from dataferry.adapters.data_chunk import DataChunk
from dataferry.exceptions import SchemaError

BatchCallback = Callable[[DataChunk], bool]

DEFAULT_BATCH_SIZE = 10000
DEFAULT_PREVIEW_LIMIT = 10


class EndpointKind(Enum):
    """Which side of the transfer an adapter represents."""

    STORE = "store"
    FILE = "file"


@dataclass
class ConnectionHandle:
    """An open connection returned by ``SchemaAdapter.connect``.

    ``params`` holds the credentials the handle was opened with, minus
    secrets. ``connection`` is the adapter-native connection object (a DuckDB
    connection, a file path, a dictionary of frames) and is opaque to the
    engine.
    """

    adapter: str
    params: Dict[str, Any]
    connection: Any = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_open: bool = True
    # Adapter-private bookkeeping (e.g. target column types)
    state: Dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        """Short human readable description of the endpoint."""
        target = self.params.get("path") or self.params.get("database") or ""
        return f"{self.adapter}:{target}" if target else self.adapter


class SchemaAdapter(ABC):
    """Uniform capability interface every endpoint implements.

    Source-side adapters produce rows through ``iter_batches`` (and the
    callback form ``stream_rows``); target-side adapters receive them through
    ``prepare_target`` and ``accept_rows``.
    """

    name: str = "adapter"
    kind: EndpointKind = EndpointKind.STORE
    secret_params = ("password", "token")

    # Adapters able to restart a stream from a row offset override this
    supports_offset: bool = False

    @abstractmethod
    def connect(self, credentials: Dict[str, Any]) -> ConnectionHandle:
        """Open a connection to the endpoint.

        Raises:
        ------
            EndpointConnectionError: If the endpoint cannot be reached

        """

    def disconnect(self, handle: ConnectionHandle) -> None:
        """Release the connection held by ``handle``."""
        handle.is_open = False

    @abstractmethod
    def list_relations(self, handle: ConnectionHandle) -> List[Relation]:
        """Enumerate the relations available at the endpoint."""

    @abstractmethod
    def list_columns(
        self, handle: ConnectionHandle, relation_name: str
    ) -> List[ColumnDescriptor]:
        """Enumerate the columns of ``relation_name``.

        Raises:
        ------
            SchemaError: If the relation does not exist

        """

    @abstractmethod
    def fetch_preview(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Fetch at most ``limit`` rows of ``columns`` for display."""

    @abstractmethod
    def iter_batches(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[DataChunk]:
        """Yield the rows of ``relation_name`` in batches of at most ``batch_size``.

        Raises:
        ------
            TransferError: If reading fails part way

        """

    def stream_rows(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch_callback: BatchCallback,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        """Invoke ``batch_callback`` once per batch, in source order.

        The stream stops early when the callback returns False, and on the
        first error raised by the source or by the callback.

        Returns:
        -------
            Number of batches handed to the callback

        """
        delivered = 0
        batches = self.iter_batches(handle, relation_name, columns, batch_size)
        try:
            for chunk in batches:
                delivered += 1
                if not batch_callback(chunk):
                    break
        finally:
            close = getattr(batches, "close", None)
            if close is not None:
                close()
        return delivered

    def prepare_target(
        self, handle: ConnectionHandle, relation_name: str, columns: List[str]
    ) -> None:
        """Make sure ``relation_name`` can accept rows with ``columns``.

        The default checks that every column exists in the relation.

        Raises:
        ------
            SchemaError: If a column is missing

        """
        available = {c.name for c in self.list_columns(handle, relation_name)}
        missing = [c for c in columns if c not in available]
        if missing:
            raise SchemaError(
                f"Relation '{relation_name}' has no column(s) {missing}", self.name
            )

    @abstractmethod
    def accept_rows(
        self,
        handle: ConnectionHandle,
        relation_name: str,
        columns: List[str],
        batch: DataChunk,
    ) -> None:
        """Append ``batch`` (already projected to ``columns``) to the relation.

        Raises:
        ------
            TransferError: If the write fails

        """

    def public_params(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        """Credentials with secret values removed, safe to log and display."""
        return {k: v for k, v in credentials.items() if k not in self.secret_params}
