from dataferry.adapters.in_memory.adapter import (
    SAMPLE_CATALOG,
    InMemoryAdapter,
    SyntheticRelation,
    generate_rows,
)
from dataferry.adapters.registry import adapter_registry

adapter_registry.register("memory", InMemoryAdapter)

__all__ = [
    "InMemoryAdapter",
    "SyntheticRelation",
    "SAMPLE_CATALOG",
    "generate_rows",
]
