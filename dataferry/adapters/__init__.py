"""Endpoint adapters for dataferry.

Importing this package registers every built-in adapter with
``adapter_registry``.
"""

from dataferry.adapters.base import (
    ColumnDescriptor,
    ConnectionHandle,
    EndpointKind,
    Relation,
    SchemaAdapter,
)
from dataferry.adapters.csv import CSVFileAdapter
from dataferry.adapters.data_chunk import DataChunk
from dataferry.adapters.duckdb import DuckDBStoreAdapter
from dataferry.adapters.in_memory import InMemoryAdapter
from dataferry.adapters.registry import adapter_registry


def get_adapter(adapter_type: str) -> SchemaAdapter:
    """Create an adapter instance for the given endpoint type."""
    return adapter_registry.create(adapter_type)


__all__ = [
    "ColumnDescriptor",
    "ConnectionHandle",
    "CSVFileAdapter",
    "DataChunk",
    "DuckDBStoreAdapter",
    "EndpointKind",
    "InMemoryAdapter",
    "Relation",
    "SchemaAdapter",
    "adapter_registry",
    "get_adapter",
]
