"""Value types shared by the mapper, the ingestion engine and the workflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from dataferry.adapters.base.adapter import ConnectionHandle, SchemaAdapter
from dataferry.adapters.base.schema import ColumnDescriptor


class TransferDirection(Enum):
    """Which endpoint is the source of a transfer."""

    STORE_TO_FILE = "store-to-file"
    FILE_TO_STORE = "file-to-store"

    @property
    def needs_mapping(self) -> bool:
        """Only a file loaded into an existing table reconciles two schemas."""
        return self is TransferDirection.FILE_TO_STORE


@dataclass(frozen=True)
class MappingEntry:
    """One selected source column and the target column it lands in.

    ``target`` is None when the column is excluded from the transfer.
    """

    source: ColumnDescriptor
    target: Optional[ColumnDescriptor] = None

    @property
    def is_mapped(self) -> bool:
        return self.target is not None


Mapping = Tuple[MappingEntry, ...]


class JobPhase(Enum):
    """Lifecycle of an ingestion job."""

    PREPARING = "preparing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobPhase.COMPLETED, JobPhase.FAILED, JobPhase.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self in (JobPhase.PREPARING, JobPhase.RUNNING)


@dataclass(frozen=True)
class JobHandle:
    """Opaque reference to a job started by the ingestion engine."""

    job_id: str


@dataclass(frozen=True)
class JobSpec:
    """Everything the ingestion engine needs to run one transfer."""

    direction: TransferDirection
    source_adapter: SchemaAdapter
    source_handle: ConnectionHandle
    source_relation: str
    target_adapter: SchemaAdapter
    target_handle: ConnectionHandle
    target_relation: str
    resolved_mapping: Mapping
    total_row_estimate: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of an ingestion job at one point in time.

    Snapshots are what ``IngestionEngine.status`` returns and what progress
    listeners receive; ``rows_processed`` never decreases from one snapshot
    of a job to the next.
    """

    job_id: str
    phase: JobPhase
    rows_processed: int = 0
    total_row_estimate: Optional[int] = None
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    last_error: Optional[str] = None
    error_kind: Optional[str] = None
    batch_size: Optional[int] = None
    batches_committed: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def has_estimate(self) -> bool:
        return bool(self.total_row_estimate)

    @property
    def percent_complete(self) -> Optional[float]:
        """Progress against the estimate, or None when it is unknown.

        The estimate is advisory, so a completed job always reports 100.
        """
        if self.phase is JobPhase.COMPLETED:
            return 100.0
        if not self.has_estimate:
            return None
        return min(100.0, 100.0 * self.rows_processed / self.total_row_estimate)

    def elapsed_seconds(self, now: Optional[datetime] = None) -> float:
        end = self.ended_at or now or _utcnow()
        return max(0.0, (end - self.started_at).total_seconds())

    def rows_per_second(self, now: Optional[datetime] = None) -> float:
        return self.rows_processed / max(1.0, self.elapsed_seconds(now))

    def estimated_seconds_remaining(self, now: Optional[datetime] = None) -> Optional[float]:
        """Remaining time at the current rate; None when it cannot be known."""
        if self.is_terminal or not self.has_estimate:
            return None
        rate = self.rows_per_second(now)
        if rate <= 0:
            return None
        remaining = max(0, self.total_row_estimate - self.rows_processed)
        return remaining / rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "phase": self.phase.value,
            "rows_processed": self.rows_processed,
            "total_row_estimate": self.total_row_estimate,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "last_error": self.last_error,
            "error_kind": self.error_kind,
            "batch_size": self.batch_size,
            "batches_committed": self.batches_committed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgressSnapshot":
        ended_at = data.get("ended_at")
        return cls(
            job_id=data["job_id"],
            phase=JobPhase(data["phase"]),
            rows_processed=int(data.get("rows_processed", 0)),
            total_row_estimate=data.get("total_row_estimate"),
            started_at=datetime.fromisoformat(data["started_at"]),
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
            last_error=data.get("last_error"),
            error_kind=data.get("error_kind"),
            batch_size=data.get("batch_size"),
            batches_committed=int(data.get("batches_committed", 0)),
        )


def source_names(mapping: Mapping) -> List[str]:
    return [entry.source.name for entry in mapping]


def target_names(mapping: Mapping) -> List[str]:
    return [entry.target.name for entry in mapping if entry.target is not None]
