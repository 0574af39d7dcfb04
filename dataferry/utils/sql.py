"""
SQL identifier quoting for the DuckDB store adapter.

Table and column names come from discovery and from user supplied mappings,
so they are always quoted rather than interpolated as-is.
"""

from typing import List, Optional


def quote_identifier(identifier: str) -> str:
    """
    Safely quote an SQL identifier (table name, column name, etc.).

    Embedded double quotes are doubled, so any column name read from a file
    header can be referenced.

    Raises:
        ValueError: If the identifier is empty or contains a NUL byte
    """
    if not identifier or "\x00" in identifier:
        raise ValueError(f"Invalid SQL identifier: {identifier!r}")
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def quote_schema_table(table_name: str, schema_name: Optional[str] = None) -> str:
    """Safely quote a schema.table reference."""
    quoted_table = quote_identifier(table_name)
    if schema_name:
        return f"{quote_identifier(schema_name)}.{quoted_table}"
    return quoted_table


def format_column_list(columns: List[str]) -> str:
    """Comma-separated, quoted column list; ``*`` when empty."""
    if not columns:
        return "*"
    return ", ".join(quote_identifier(col) for col in columns)
