"""Data chunk container exchanged between adapters and the ingestion engine."""

from typing import Any, Dict, List, Optional, Union

import pandas as pd
import pyarrow as pa


class DataChunk:
    """Container for one batch of rows moving between two endpoints.

    A chunk wraps either a PyArrow table or a pandas DataFrame and converts
    lazily between the two, so that a DuckDB record batch can be written to a
    CSV file (pandas) and a CSV chunk can be registered in DuckDB (Arrow)
    without each adapter knowing where the batch came from.
    """

    __slots__ = ("_arrow_table", "_pandas_df")

    def __init__(
        self,
        data: Union[pa.Table, pa.RecordBatch, pd.DataFrame, List[Dict[str, Any]]],
        columns: Optional[List[str]] = None,
    ):
        """Initialize a DataChunk.

        Args:
        ----
            data: The rows, as a PyArrow Table or RecordBatch, a pandas
                DataFrame, or a list of row dictionaries.
            columns: Column order for list-of-dict input. Needed when the list
                is empty so the chunk still carries its column names.

        """
        self._arrow_table: Optional[pa.Table] = None
        self._pandas_df: Optional[pd.DataFrame] = None

        if isinstance(data, pa.Table):
            self._arrow_table = data
        elif isinstance(data, pa.RecordBatch):
            self._arrow_table = pa.Table.from_batches([data])
        elif isinstance(data, pd.DataFrame):
            self._pandas_df = data
        elif isinstance(data, list):
            self._pandas_df = pd.DataFrame(data, columns=columns)
        else:
            raise TypeError(f"Unsupported data type: {type(data)}")

    @property
    def arrow_table(self) -> pa.Table:
        """Get data as PyArrow Table."""
        if self._arrow_table is None:
            assert self._pandas_df is not None
            try:
                self._arrow_table = pa.Table.from_pandas(
                    self._pandas_df, preserve_index=False
                )
            except (pa.ArrowInvalid, pa.ArrowTypeError):
                self._arrow_table = pa.Table.from_pandas(
                    _stringify_mixed_columns(self._pandas_df), preserve_index=False
                )
        return self._arrow_table

    @property
    def pandas_df(self) -> pd.DataFrame:
        """Get data as pandas DataFrame."""
        if self._pandas_df is None:
            assert self._arrow_table is not None
            self._pandas_df = self._arrow_table.to_pandas()
        return self._pandas_df

    @property
    def column_names(self) -> List[str]:
        """Column names in chunk order."""
        if self._arrow_table is not None:
            return list(self._arrow_table.column_names)
        assert self._pandas_df is not None
        return [str(c) for c in self._pandas_df.columns]

    def __len__(self) -> int:
        """Get the number of rows in this chunk."""
        if self._arrow_table is not None:
            return self._arrow_table.num_rows
        assert self._pandas_df is not None
        return len(self._pandas_df)

    def select_columns(self, columns: List[str]) -> "DataChunk":
        """Return a new chunk with only ``columns``, in that order.

        Raises:
            KeyError: If a requested column is not present in the chunk
        """
        missing = [c for c in columns if c not in self.column_names]
        if missing:
            raise KeyError(f"Columns not found in batch: {missing}")

        if self._arrow_table is not None:
            return DataChunk(self._arrow_table.select(columns))
        return DataChunk(self.pandas_df[columns])

    def rename_columns(self, names: List[str]) -> "DataChunk":
        """Return a new chunk whose columns are renamed positionally."""
        if len(names) != len(self.column_names):
            raise ValueError(
                f"Expected {len(self.column_names)} names, got {len(names)}"
            )
        if self._arrow_table is not None:
            return DataChunk(self._arrow_table.rename_columns(names))
        df = self.pandas_df.copy()
        df.columns = names
        return DataChunk(df)

    def to_records(self) -> List[Dict[str, Any]]:
        """Rows as dictionaries, with missing values as None."""
        df = self.pandas_df
        return df.astype(object).where(df.notna(), None).to_dict(orient="records")

    def __repr__(self) -> str:
        return f"DataChunk(rows={len(self)}, columns={self.column_names})"


def _stringify_mixed_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Convert only the columns Arrow cannot type to strings, keeping nulls."""
    converted = df.copy()
    for name in df.columns:
        try:
            pa.array(df[name], from_pandas=True)
        except (pa.ArrowInvalid, pa.ArrowTypeError):
            converted[name] = df[name].map(
                lambda v: None if pd.isna(v) else str(v)
            ).astype(object)
    return converted
