from .adapter import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_PREVIEW_LIMIT,
    BatchCallback,
    ConnectionHandle,
    EndpointKind,
    SchemaAdapter,
)
from .schema import ColumnDescriptor, Relation, columns_from_arrow

__all__ = [
    "BatchCallback",
    "ColumnDescriptor",
    "ConnectionHandle",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_PREVIEW_LIMIT",
    "EndpointKind",
    "Relation",
    "SchemaAdapter",
    "columns_from_arrow",
]
