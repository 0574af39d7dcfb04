"""The transfer workflow state machine.

``WorkflowOrchestrator`` walks an operator through one transfer: choose a
direction, connect the source, pick a relation and columns, connect the
target, reconcile the schemas, preview, then run the ingestion job. Legal
moves come from ``TRANSITIONS``, a table keyed by ``(phase, direction)`` that
is generated from the per-direction ``PHASE_SEQUENCES``.

Every value captured along the way is owned by the phase whose action
produced it. Moving back to a phase discards everything owned by that phase
and the phases after it, closing connections as needed.
"""

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from dataferry.adapters.base.adapter import ConnectionHandle, SchemaAdapter
from dataferry.adapters.base.schema import ColumnDescriptor, Relation
from dataferry.core.ingestion import IngestionEngine
from dataferry.core.mapper import ColumnMapper
from dataferry.core.models import (
    JobHandle,
    JobPhase,
    JobSpec,
    Mapping,
    ProgressSnapshot,
    TransferDirection,
    source_names,
)
from dataferry.core.profiles import TransferSettings
from dataferry.exceptions import InvalidTransition, SchemaError, ValidationError
from dataferry.logging import get_logger

logger = get_logger(__name__)


class WorkflowPhase(Enum):
    SELECT_DIRECTION = "select-direction"
    CONNECT_SOURCE = "connect-source"
    SELECT_RELATION = "select-relation"
    SELECT_COLUMNS = "select-columns"
    CONNECT_TARGET = "connect-target"
    MAP_COLUMNS = "map-columns"
    PREVIEW_DATA = "preview-data"
    INGESTING = "ingesting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES: FrozenSet[WorkflowPhase] = frozenset(
    {WorkflowPhase.COMPLETED, WorkflowPhase.FAILED, WorkflowPhase.CANCELLED}
)

_JOB_TO_WORKFLOW = {
    JobPhase.COMPLETED: WorkflowPhase.COMPLETED,
    JobPhase.FAILED: WorkflowPhase.FAILED,
    JobPhase.CANCELLED: WorkflowPhase.CANCELLED,
}

P = WorkflowPhase

PHASE_SEQUENCES: Dict[TransferDirection, Tuple[WorkflowPhase, ...]] = {
    TransferDirection.STORE_TO_FILE: (
        P.SELECT_DIRECTION,
        P.CONNECT_SOURCE,
        P.SELECT_RELATION,
        P.SELECT_COLUMNS,
        P.CONNECT_TARGET,
        P.PREVIEW_DATA,
        P.INGESTING,
    ),
    TransferDirection.FILE_TO_STORE: (
        P.SELECT_DIRECTION,
        P.CONNECT_SOURCE,
        P.SELECT_COLUMNS,
        P.CONNECT_TARGET,
        P.SELECT_RELATION,
        P.MAP_COLUMNS,
        P.PREVIEW_DATA,
        P.INGESTING,
    ),
}


def _build_transitions() -> Dict[Tuple[WorkflowPhase, TransferDirection], FrozenSet[WorkflowPhase]]:
    table = {}
    for direction, sequence in PHASE_SEQUENCES.items():
        for current, following in zip(sequence, sequence[1:]):
            table[(current, direction)] = frozenset({following})
        table[(P.INGESTING, direction)] = TERMINAL_PHASES
    return table


TRANSITIONS = _build_transitions()

STEP_LABELS: Dict[TransferDirection, Dict[WorkflowPhase, str]] = {
    TransferDirection.STORE_TO_FILE: {
        P.SELECT_DIRECTION: "Select Direction",
        P.CONNECT_SOURCE: "Connect Store",
        P.SELECT_RELATION: "Select Table",
        P.SELECT_COLUMNS: "Select Columns",
        P.CONNECT_TARGET: "Configure File",
        P.PREVIEW_DATA: "Preview Data",
        P.INGESTING: "Data Ingestion",
    },
    TransferDirection.FILE_TO_STORE: {
        P.SELECT_DIRECTION: "Select Direction",
        P.CONNECT_SOURCE: "Open File",
        P.SELECT_COLUMNS: "Select Columns",
        P.CONNECT_TARGET: "Connect Store",
        P.SELECT_RELATION: "Select Table",
        P.MAP_COLUMNS: "Map Columns",
        P.PREVIEW_DATA: "Preview Data",
        P.INGESTING: "Data Ingestion",
    },
}

# WorkflowState fields produced by the action taken in each phase
OWNED_FIELDS: Dict[TransferDirection, Dict[WorkflowPhase, Tuple[str, ...]]] = {
    TransferDirection.STORE_TO_FILE: {
        P.SELECT_DIRECTION: ("direction",),
        P.CONNECT_SOURCE: ("source_handle", "relations"),
        P.SELECT_RELATION: ("source_relation", "source_columns", "total_row_estimate"),
        P.SELECT_COLUMNS: ("selected_columns",),
        P.CONNECT_TARGET: (
            "target_handle",
            "target_relation",
            "target_columns",
            "mapping",
            "resolved_mapping",
            "preview_rows",
        ),
        P.PREVIEW_DATA: ("job", "last_snapshot"),
        P.INGESTING: (),
    },
    TransferDirection.FILE_TO_STORE: {
        P.SELECT_DIRECTION: ("direction",),
        P.CONNECT_SOURCE: (
            "source_handle",
            "source_relation",
            "source_columns",
            "total_row_estimate",
        ),
        P.SELECT_COLUMNS: ("selected_columns",),
        P.CONNECT_TARGET: ("target_handle", "relations"),
        P.SELECT_RELATION: ("target_relation", "target_columns", "mapping"),
        P.MAP_COLUMNS: ("resolved_mapping", "preview_rows"),
        P.PREVIEW_DATA: ("job", "last_snapshot"),
        P.INGESTING: (),
    },
}


class StepStatus(Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class Step:
    phase: WorkflowPhase
    label: str
    status: StepStatus


@dataclass
class WorkflowState:
    """Everything the workflow has captured so far.

    Only the orchestrator holds the live instance; ``WorkflowOrchestrator.state``
    hands out copies.
    """

    phase: WorkflowPhase = WorkflowPhase.SELECT_DIRECTION
    direction: Optional[TransferDirection] = None
    source_handle: Optional[ConnectionHandle] = None
    target_handle: Optional[ConnectionHandle] = None
    relations: Tuple[Relation, ...] = ()
    source_relation: Optional[str] = None
    target_relation: Optional[str] = None
    total_row_estimate: Optional[int] = None
    source_columns: Tuple[ColumnDescriptor, ...] = ()
    selected_columns: Tuple[ColumnDescriptor, ...] = ()
    target_columns: Tuple[ColumnDescriptor, ...] = ()
    mapping: Mapping = ()
    resolved_mapping: Mapping = ()
    preview_rows: Tuple[Dict[str, Any], ...] = ()
    job: Optional[JobHandle] = None
    last_snapshot: Optional[ProgressSnapshot] = None
    history: Tuple[WorkflowPhase, ...] = (WorkflowPhase.SELECT_DIRECTION,)

    @property
    def selected_relation(self) -> Optional[str]:
        """The store-side relation chosen in the relation step."""
        if self.direction is TransferDirection.FILE_TO_STORE:
            return self.target_relation
        return self.source_relation


_DEFAULTS = WorkflowState()


def _single_relation(relations: Sequence[Relation], handle: ConnectionHandle) -> Relation:
    if not relations:
        raise SchemaError(f"No relation found at {handle.describe()}", handle.adapter)
    return relations[0]


class WorkflowOrchestrator:
    """Drives one transfer at a time between a store and a file endpoint."""

    def __init__(
        self,
        store_adapter: SchemaAdapter,
        file_adapter: SchemaAdapter,
        engine: Optional[IngestionEngine] = None,
        settings: Optional[TransferSettings] = None,
    ):
        self.store_adapter = store_adapter
        self.file_adapter = file_adapter
        self.settings = settings or (engine.settings if engine else TransferSettings())
        self.engine = engine or IngestionEngine(self.settings)
        self.mapper = ColumnMapper()
        self._lock = threading.RLock()
        self._state = WorkflowState()

    @property
    def state(self) -> WorkflowState:
        """A copy of the current workflow state."""
        with self._lock:
            return replace(
                self._state, preview_rows=tuple(dict(r) for r in self._state.preview_rows)
            )

    @property
    def phase(self) -> WorkflowPhase:
        with self._lock:
            return self._state.phase

    @property
    def source_adapter(self) -> SchemaAdapter:
        if self._state.direction is TransferDirection.FILE_TO_STORE:
            return self.file_adapter
        return self.store_adapter

    @property
    def target_adapter(self) -> SchemaAdapter:
        if self._state.direction is TransferDirection.FILE_TO_STORE:
            return self.store_adapter
        return self.file_adapter

    def select_direction(
        self, direction: Union[TransferDirection, str]
    ) -> WorkflowPhase:
        with self._lock:
            if self._state.phase is not P.SELECT_DIRECTION:
                raise InvalidTransition(
                    self._state.phase, P.CONNECT_SOURCE, "direction is already chosen"
                )
            try:
                direction = TransferDirection(direction)
            except ValueError:
                raise ValidationError(f"Unknown transfer direction: {direction}") from None
            self._state.direction = direction
            return self._advance(self._next_phase(P.SELECT_DIRECTION))

    def connect_source(self, credentials: Dict[str, Any]) -> WorkflowPhase:
        """Connect the source endpoint.

        A file source has a single relation; it is selected right away and
        its columns are loaded.
        """
        with self._lock:
            following = self._next_phase(P.CONNECT_SOURCE)
            adapter = self.source_adapter
            handle = adapter.connect(credentials)
            try:
                relations = tuple(adapter.list_relations(handle))
                if self._state.direction is TransferDirection.FILE_TO_STORE:
                    relation = _single_relation(relations, handle)
                    columns = tuple(adapter.list_columns(handle, relation.name))
            except BaseException:
                self._close(adapter, handle)
                raise

            self._state.source_handle = handle
            if self._state.direction is TransferDirection.FILE_TO_STORE:
                self._state.source_relation = relation.name
                self._state.total_row_estimate = relation.row_count
                self._state.source_columns = columns
            else:
                self._state.relations = relations
            logger.info(f"Connected source {handle.describe()}")
            return self._advance(following)

    def select_relation(self, name: str) -> WorkflowPhase:
        """Choose the store-side relation: the source table or the target table."""
        with self._lock:
            following = self._next_phase(P.SELECT_RELATION)
            relation = next((r for r in self._state.relations if r.name == name), None)
            if relation is None:
                raise SchemaError(f"Table '{name}' not found")

            if self._state.direction is TransferDirection.STORE_TO_FILE:
                columns = tuple(
                    self.store_adapter.list_columns(self._state.source_handle, name)
                )
                self._state.source_relation = name
                self._state.source_columns = columns
                self._state.total_row_estimate = relation.row_count
            else:
                columns = tuple(
                    self.store_adapter.list_columns(self._state.target_handle, name)
                )
                self._state.target_relation = name
                self._state.target_columns = columns
                self._state.mapping = self.mapper.propose_mapping(
                    self._state.selected_columns, columns
                )
            return self._advance(following)

    def select_columns(self, names: Optional[Sequence[str]] = None) -> WorkflowPhase:
        """Select source columns by name; None selects every column.

        The selection keeps source column order.
        """
        with self._lock:
            following = self._next_phase(P.SELECT_COLUMNS)
            available = self._state.source_columns
            if names is None:
                selected = tuple(available)
            else:
                wanted = set(names)
                unknown = sorted(wanted - {c.name for c in available})
                if unknown:
                    raise SchemaError(f"Unknown column(s): {', '.join(unknown)}")
                selected = tuple(c for c in available if c.name in wanted)
            if not selected:
                raise ValidationError("Select at least one column")

            self._state.selected_columns = selected
            logger.debug(f"Selected {len(selected)} of {len(available)} columns")
            return self._advance(following)

    def connect_target(self, credentials: Dict[str, Any]) -> WorkflowPhase:
        """Connect the target endpoint.

        A file target takes the selected columns as they are, so the preview
        is loaded immediately.
        """
        with self._lock:
            following = self._next_phase(P.CONNECT_TARGET)
            adapter = self.target_adapter
            handle = adapter.connect(credentials)
            try:
                relations = tuple(adapter.list_relations(handle))
                if self._state.direction is TransferDirection.STORE_TO_FILE:
                    target_relation = _single_relation(relations, handle).name
                    selected = self._state.selected_columns
                    resolved = self.mapper.finalize(self.mapper.identity_mapping(selected))
                    preview = self._load_preview(resolved)
            except BaseException:
                self._close(adapter, handle)
                raise

            self._state.target_handle = handle
            if self._state.direction is TransferDirection.STORE_TO_FILE:
                self._state.target_relation = target_relation
                self._state.target_columns = tuple(selected)
                self._state.mapping = resolved
                self._state.resolved_mapping = resolved
                self._state.preview_rows = preview
            else:
                self._state.relations = relations
            logger.info(f"Connected target {handle.describe()}")
            return self._advance(following)

    def set_mapping_target(self, source_name: str, target_name: Optional[str]) -> Mapping:
        """Override the target of one source column; None excludes it."""
        with self._lock:
            self._require(P.MAP_COLUMNS, P.MAP_COLUMNS)
            self._state.mapping = self.mapper.set_target(
                self._state.mapping, source_name, target_name, self._state.target_columns
            )
            return self._state.mapping

    def confirm_mapping(self) -> WorkflowPhase:
        """Finalize the mapping against the target's current columns and load the preview."""
        with self._lock:
            following = self._next_phase(P.MAP_COLUMNS)
            state = self._state
            target_columns = tuple(
                self.store_adapter.list_columns(state.target_handle, state.target_relation)
            )
            mapping = state.mapping
            if target_columns != state.target_columns:
                logger.info(f"Columns of '{state.target_relation}' changed; revalidating mapping")
                mapping = self.mapper.revalidate(mapping, target_columns)
                state.target_columns = target_columns
                state.mapping = mapping

            resolved = self.mapper.finalize(mapping, target_columns)
            state.preview_rows = self._load_preview(resolved)
            state.resolved_mapping = resolved
            return self._advance(following)

    def start_transfer(self) -> JobHandle:
        with self._lock:
            following = self._next_phase(P.PREVIEW_DATA)
            state = self._state
            spec = JobSpec(
                direction=state.direction,
                source_adapter=self.source_adapter,
                source_handle=state.source_handle,
                source_relation=state.source_relation,
                target_adapter=self.target_adapter,
                target_handle=state.target_handle,
                target_relation=state.target_relation,
                resolved_mapping=state.resolved_mapping,
                total_row_estimate=state.total_row_estimate,
            )
            handle = self.engine.start(spec)
            state.job = handle
            state.last_snapshot = self.engine.status(handle)
            self._advance(following)
            return handle

    def refresh(self) -> ProgressSnapshot:
        """Pull the job's latest snapshot, moving to its terminal phase once it ends."""
        with self._lock:
            state = self._state
            if state.job is None:
                raise InvalidTransition(state.phase, P.INGESTING, "no transfer has been started")
            if state.phase.is_terminal:
                return state.last_snapshot

            snapshot = self.engine.status(state.job)
            state.last_snapshot = snapshot
            if snapshot.is_terminal:
                self._advance(_JOB_TO_WORKFLOW[snapshot.phase])
            return snapshot

    def wait(self, timeout: Optional[float] = None) -> ProgressSnapshot:
        with self._lock:
            job = self._state.job
            if job is None:
                raise InvalidTransition(
                    self._state.phase, P.INGESTING, "no transfer has been started"
                )
        self.engine.wait(job, timeout)
        return self.refresh()

    def cancel_transfer(self) -> ProgressSnapshot:
        """Ask the running job to stop at its next batch boundary."""
        with self._lock:
            self._require(P.INGESTING, P.CANCELLED)
            snapshot = self.engine.cancel(self._state.job)
            self._state.last_snapshot = snapshot
            return snapshot

    def go_back(self) -> WorkflowPhase:
        """Return to the previous phase of the direction's sequence."""
        with self._lock:
            sequence = self._sequence()
            index = self._position(sequence)
            if index == 0:
                raise InvalidTransition(self._state.phase, P.SELECT_DIRECTION, "already at the first step")
            return self._rewind(sequence[index - 1])

    def navigate_to(self, phase: WorkflowPhase) -> WorkflowPhase:
        """Jump back to a completed step, or stay on the current one."""
        with self._lock:
            if phase is self._state.phase:
                return phase
            if not self.is_reachable(phase):
                raise InvalidTransition(self._state.phase, phase, "step is not reachable")
            return self._rewind(phase)

    def is_reachable(self, phase: WorkflowPhase) -> bool:
        """Whether the stepper may navigate to ``phase``."""
        with self._lock:
            if phase is self._state.phase:
                return True
            sequence = self._sequence()
            if phase not in sequence or phase is P.INGESTING:
                return False
            if self._job_active():
                return False
            return sequence.index(phase) < self._position(sequence)

    def steps(self) -> List[Step]:
        """Stepper view of the current direction's phases."""
        with self._lock:
            state = self._state
            if state.direction is None:
                return [Step(P.SELECT_DIRECTION, "Select Direction", StepStatus.CURRENT)]

            sequence = PHASE_SEQUENCES[state.direction]
            labels = STEP_LABELS[state.direction]
            current = self._position(sequence)
            steps = []
            for index, phase in enumerate(sequence):
                if index < current or state.phase is P.COMPLETED:
                    status = StepStatus.COMPLETED
                elif index == current:
                    status = StepStatus.CURRENT
                else:
                    status = StepStatus.UPCOMING
                steps.append(Step(phase, labels[phase], status))
            return steps

    def reset(self, grace_period: Optional[float] = None) -> Optional[ProgressSnapshot]:
        """Cancel any job, close every connection and start over.

        Blocks until the job is cancelled or the grace period runs out.

        Returns:
            The final snapshot of the discarded job, if there was one
        """
        with self._lock:
            final = None
            if self._state.job is not None:
                final = self.engine.reset(grace_period)
            self._close(self.source_adapter, self._state.source_handle)
            self._close(self.target_adapter, self._state.target_handle)
            self._state = WorkflowState()
            logger.info("Workflow reset")
            return final

    def _sequence(self) -> Tuple[WorkflowPhase, ...]:
        if self._state.direction is None:
            return (P.SELECT_DIRECTION,)
        return PHASE_SEQUENCES[self._state.direction]

    def _position(self, sequence: Tuple[WorkflowPhase, ...]) -> int:
        phase = self._state.phase
        if phase.is_terminal:
            phase = P.INGESTING
        return sequence.index(phase)

    def _job_active(self) -> bool:
        if self._state.phase is P.INGESTING:
            self.refresh()
        return self._state.phase is P.INGESTING

    def _require(self, expected: WorkflowPhase, requested: WorkflowPhase) -> None:
        if self._state.phase is not expected:
            raise InvalidTransition(
                self._state.phase, requested, f"only allowed during {expected.value}"
            )

    def _next_phase(self, expected: WorkflowPhase) -> WorkflowPhase:
        """Validate that the current phase is ``expected`` and return its successor."""
        state = self._state
        allowed = TRANSITIONS.get((state.phase, state.direction))
        if state.phase is not expected or not allowed:
            raise InvalidTransition(
                state.phase, expected, f"only allowed during {expected.value}"
            )
        (following,) = allowed
        return following

    def _advance(self, following: WorkflowPhase) -> WorkflowPhase:
        state = self._state
        allowed = TRANSITIONS.get((state.phase, state.direction), frozenset())
        if following not in allowed:
            raise InvalidTransition(state.phase, following)
        logger.info(f"Workflow: {state.phase.value} -> {following.value}")
        state.phase = following
        state.history = state.history + (following,)
        return following

    def _rewind(self, target: WorkflowPhase) -> WorkflowPhase:
        state = self._state
        if self._job_active():
            raise InvalidTransition(state.phase, target, "a transfer is still running")

        sequence = self._sequence()
        owned = OWNED_FIELDS.get(state.direction, {})
        # Latest phases first; the direction decides which adapter closes a handle
        for phase in reversed(sequence[sequence.index(target):]):
            for name in owned.get(phase, ()):
                self._discard(name)

        logger.info(f"Workflow: back from {state.phase.value} to {target.value}")
        state.phase = target
        state.history = state.history + (target,)
        return target

    def _discard(self, name: str) -> None:
        state = self._state
        if name == "source_handle":
            self._close(self.source_adapter, state.source_handle)
        elif name == "target_handle":
            self._close(self.target_adapter, state.target_handle)
        elif name == "job" and state.job is not None:
            self.engine.reset(0)
        setattr(state, name, getattr(_DEFAULTS, name))

    def _load_preview(self, resolved: Mapping) -> Tuple[Dict[str, Any], ...]:
        rows = self.source_adapter.fetch_preview(
            self._state.source_handle,
            self._state.source_relation,
            source_names(resolved),
            self.settings.preview_limit,
        )
        return tuple(self.mapper.project_rows(rows, resolved))

    def _close(self, adapter: SchemaAdapter, handle: Optional[ConnectionHandle]) -> None:
        if handle is None or not handle.is_open:
            return
        try:
            adapter.disconnect(handle)
        except Exception as e:
            logger.warning(f"Error closing {handle.describe()}: {e}")
