"""dataferry - bulk transfers between a columnar store and flat files."""

__version__ = "0.1.0"
__package_name__ = "dataferry"

from .exceptions import (
    DataFerryError,
    EndpointConnectionError,
    SchemaError,
    TransferError,
    ValidationError,
)

__all__ = [
    "DataFerryError",
    "EndpointConnectionError",
    "SchemaError",
    "TransferError",
    "ValidationError",
]
