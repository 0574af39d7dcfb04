from typing import Dict, List, Type

from dataferry.adapters.base.adapter import SchemaAdapter


class AdapterRegistry:
    """Registry of adapter classes by endpoint type name."""

    def __init__(self):
        self._adapters: Dict[str, Type[SchemaAdapter]] = {}

    def register(self, adapter_type: str, adapter_class: Type[SchemaAdapter]):
        """Register an adapter class."""
        self._adapters[adapter_type.lower()] = adapter_class

    def get(self, adapter_type: str) -> Type[SchemaAdapter]:
        """Get an adapter class."""
        key = adapter_type.lower()
        if key not in self._adapters:
            raise ValueError(f"Unknown adapter type: {adapter_type}")
        return self._adapters[key]

    def create(self, adapter_type: str) -> SchemaAdapter:
        """Instantiate a registered adapter with its defaults."""
        return self.get(adapter_type)()

    def available(self) -> List[str]:
        """Registered type names, sorted."""
        return sorted(self._adapters)


adapter_registry = AdapterRegistry()
