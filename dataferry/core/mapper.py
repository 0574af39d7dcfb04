"""Column mapping between a source and a target schema.

A mapping is an ordered tuple of ``MappingEntry`` values, one per selected
source column. The mapper never mutates a mapping in place; every operation
returns a new tuple.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from dataferry.adapters.base.schema import ColumnDescriptor
from dataferry.adapters.data_chunk import DataChunk
from dataferry.core.models import Mapping, MappingEntry
from dataferry.exceptions import (
    EmptyMapping,
    SchemaError,
    UnknownSource,
    UnknownTarget,
    ValidationError,
)
from dataferry.logging import get_logger

logger = get_logger(__name__)


def _check_unique_sources(columns: Iterable[ColumnDescriptor]) -> None:
    seen = set()
    for column in columns:
        if column.name in seen:
            raise ValidationError(f"Duplicate source column '{column.name}'")
        seen.add(column.name)


class ColumnMapper:
    """Reconciles a list of source columns against a list of target columns."""

    def propose_mapping(
        self,
        source_columns: Sequence[ColumnDescriptor],
        target_columns: Sequence[ColumnDescriptor],
    ) -> Mapping:
        """Best-guess mapping by case-insensitive exact name.

        The first target in list order wins when several match. Sources
        without a match are left unmapped.
        """
        _check_unique_sources(source_columns)
        entries = []
        for source in source_columns:
            target = next((t for t in target_columns if source.matches(t)), None)
            entries.append(MappingEntry(source=source, target=target))

        matched = sum(1 for e in entries if e.is_mapped)
        logger.debug(
            f"Proposed mapping: {matched} of {len(entries)} source columns matched"
        )
        return tuple(entries)

    def identity_mapping(self, columns: Sequence[ColumnDescriptor]) -> Mapping:
        """Map each column to itself."""
        _check_unique_sources(columns)
        return tuple(MappingEntry(source=c, target=c) for c in columns)

    def set_target(
        self,
        mapping: Mapping,
        source_name: str,
        target_name: Optional[str],
        target_columns: Sequence[ColumnDescriptor],
    ) -> Mapping:
        """Return a copy of ``mapping`` with one entry's target replaced.

        ``target_name`` of None excludes the source column.

        Raises:
        ------
            UnknownSource: If no entry has ``source_name``
            UnknownTarget: If ``target_name`` is not in ``target_columns``

        """
        if not any(e.source.name == source_name for e in mapping):
            raise UnknownSource(source_name)

        target = None
        if target_name is not None:
            target = next((t for t in target_columns if t.name == target_name), None)
            if target is None:
                raise UnknownTarget(target_name)

        return tuple(
            MappingEntry(source=e.source, target=target)
            if e.source.name == source_name
            else e
            for e in mapping
        )

    def revalidate(
        self, mapping: Mapping, target_columns: Sequence[ColumnDescriptor]
    ) -> Mapping:
        """Rebind targets to ``target_columns`` by exact name.

        Targets that no longer exist are dropped, leaving the source unmapped.
        """
        by_name = {t.name: t for t in target_columns}
        entries = []
        for entry in mapping:
            target = None
            if entry.target is not None:
                target = by_name.get(entry.target.name)
                if target is None:
                    logger.warning(
                        f"Target column '{entry.target.name}' no longer exists; "
                        f"unmapping '{entry.source.name}'"
                    )
            entries.append(MappingEntry(source=entry.source, target=target))
        return tuple(entries)

    def finalize(
        self,
        mapping: Mapping,
        target_columns: Optional[Sequence[ColumnDescriptor]] = None,
    ) -> Mapping:
        """Resolve the mapping to the entries that transfer data.

        Raises:
        ------
            EmptyMapping: If no entry has a target
            SchemaError: If a target is absent from ``target_columns``

        """
        resolved = tuple(e for e in mapping if e.target is not None)
        if not resolved:
            raise EmptyMapping()

        if target_columns is not None:
            available = {t.name for t in target_columns}
            missing = [e.target.name for e in resolved if e.target.name not in available]
            if missing:
                raise SchemaError(f"Mapped target column(s) {missing} no longer exist")

        targets = [e.target.name for e in resolved]
        if len(set(targets)) != len(targets):
            raise ValidationError("Several source columns are mapped to the same target")
        return resolved

    def project_chunk(self, chunk: DataChunk, resolved: Mapping) -> DataChunk:
        """Select the mapped source columns and rename them to target names."""
        sources = [e.source.name for e in resolved]
        try:
            projected = chunk.select_columns(sources)
        except KeyError as e:
            raise SchemaError(f"Batch is missing mapped column(s): {e}") from e
        return projected.rename_columns([e.target.name for e in resolved])

    def project_rows(
        self, rows: Iterable[Dict[str, Any]], resolved: Mapping
    ) -> List[Dict[str, Any]]:
        """Row-dict form of ``project_chunk``, used for previews."""
        pairs = [(e.source.name, e.target.name) for e in resolved]
        return [{target: row.get(source) for source, target in pairs} for row in rows]
