"""Transfer workflow, column mapping and ingestion."""

from dataferry.core.ingestion import IngestionEngine
from dataferry.core.mapper import ColumnMapper
from dataferry.core.models import (
    JobHandle,
    JobPhase,
    JobSpec,
    MappingEntry,
    ProgressSnapshot,
    TransferDirection,
)
from dataferry.core.profiles import Profile, TransferSettings, load_profile
from dataferry.core.state import JobStateStore
from dataferry.core.workflow import (
    PHASE_SEQUENCES,
    TRANSITIONS,
    Step,
    StepStatus,
    WorkflowOrchestrator,
    WorkflowPhase,
    WorkflowState,
)

__all__ = [
    "ColumnMapper",
    "IngestionEngine",
    "JobHandle",
    "JobPhase",
    "JobSpec",
    "JobStateStore",
    "MappingEntry",
    "PHASE_SEQUENCES",
    "Profile",
    "ProgressSnapshot",
    "Step",
    "StepStatus",
    "TRANSITIONS",
    "TransferDirection",
    "TransferSettings",
    "WorkflowOrchestrator",
    "WorkflowPhase",
    "WorkflowState",
    "load_profile",
]
