from dataferry.adapters.registry import adapter_registry

from .adapter import CSVFileAdapter

adapter_registry.register("csv", CSVFileAdapter)

__all__ = ["CSVFileAdapter"]
