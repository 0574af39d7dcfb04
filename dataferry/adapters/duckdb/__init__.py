from dataferry.adapters.registry import adapter_registry

from .adapter import DuckDBStoreAdapter

adapter_registry.register("duckdb", DuckDBStoreAdapter)

__all__ = ["DuckDBStoreAdapter"]
