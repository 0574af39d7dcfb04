from dataclasses import dataclass
from typing import List, Optional

import pyarrow as pa


@dataclass(frozen=True)
class Relation:
    """A named, enumerable unit of data within an endpoint.

    For a store this is a table; for a flat file it is the file itself.
    """

    name: str
    row_count: Optional[int] = None
    engine: Optional[str] = None


@dataclass(frozen=True)
class ColumnDescriptor:
    """A column as reported by an endpoint.

    Args:
    ----
        name: Column name as stored in the endpoint
        type: Endpoint-native type name (e.g. ``BIGINT``, ``int64``, ``Decimal(10,2)``)

    """

    name: str
    type: str = "String"

    def matches(self, other: "ColumnDescriptor") -> bool:
        """Case-insensitive name equality used for column matching."""
        return self.name.lower() == other.name.lower()


def columns_from_arrow(arrow_schema: pa.Schema) -> List[ColumnDescriptor]:
    """Create column descriptors from an Arrow schema.

    Args:
    ----
        arrow_schema: Arrow schema

    Returns:
    -------
        One descriptor per field, in schema order

    """
    return [ColumnDescriptor(name=field.name, type=str(field.type)) for field in arrow_schema]

