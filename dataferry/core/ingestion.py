"""Batched, cancellable transfer jobs.

The ``IngestionEngine`` runs at most one job at a time on a daemon worker
thread. The worker is the only writer of a job's progress; readers see the
last published ``ProgressSnapshot`` through ``status`` (pull) or through
listeners registered with ``subscribe`` (push). Both observe the same
non-decreasing ``rows_processed`` sequence, and once a terminal snapshot has
been published nothing replaces it.
"""

import math
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from dataferry.adapters.data_chunk import DataChunk
from dataferry.core.mapper import ColumnMapper
from dataferry.core.models import (
    JobHandle,
    JobPhase,
    JobSpec,
    ProgressSnapshot,
    source_names,
    target_names,
)
from dataferry.core.profiles import TransferSettings
from dataferry.exceptions import (
    TRANSFER,
    DataFerryError,
    EmptyMapping,
    JobAlreadyRunning,
    UnknownJob,
)
from dataferry.logging import get_logger

logger = get_logger(__name__)

ProgressListener = Callable[[ProgressSnapshot], None]


class _Job:
    """Engine-private record of one job."""

    def __init__(self, job_id: str, spec: JobSpec, batch_size: int):
        self.job_id = job_id
        self.spec = spec
        self.batch_size = batch_size
        self.cancel_requested = threading.Event()
        # Serializes publish + notify so listeners see snapshots in order
        self.publish_lock = threading.Lock()
        self.thread: Optional[threading.Thread] = None
        self.snapshot = ProgressSnapshot(
            job_id=job_id,
            phase=JobPhase.PREPARING,
            total_row_estimate=spec.total_row_estimate,
            batch_size=batch_size,
        )


class IngestionEngine:
    """Executes one transfer job at a time."""

    def __init__(self, settings: Optional[TransferSettings] = None):
        self.settings = settings or TransferSettings()
        self._lock = threading.Lock()
        self._job: Optional[_Job] = None
        self._listeners: List[ProgressListener] = []
        self._mapper = ColumnMapper()

    def compute_batch_size(self, total_row_estimate: Optional[int]) -> int:
        """Batch size giving roughly ``progress_updates`` batches over the estimate."""
        if not total_row_estimate or total_row_estimate <= 0:
            return self.settings.default_batch_size
        batch_size = math.ceil(total_row_estimate / self.settings.progress_updates)
        return max(batch_size, self.settings.min_batch_size)

    def start(self, spec: JobSpec) -> JobHandle:
        """Start a job for ``spec`` on a worker thread.

        Raises:
            JobAlreadyRunning: If the current job is still preparing or running
            EmptyMapping: If the resolved mapping transfers no column
        """
        if not spec.resolved_mapping:
            raise EmptyMapping()

        with self._lock:
            if self._job is not None and not self._job.snapshot.is_terminal:
                raise JobAlreadyRunning(self._job.job_id)
            job_id = uuid.uuid4().hex[:12]
            job = _Job(job_id, spec, self.compute_batch_size(spec.total_row_estimate))
            self._job = job

        logger.info(
            f"Starting job {job_id}: {spec.source_relation} -> {spec.target_relation} "
            f"({spec.direction.value}, estimate={spec.total_row_estimate}, "
            f"batch_size={job.batch_size})"
        )
        self._notify(job.snapshot)

        job.thread = threading.Thread(
            target=self._run, args=(job,), name=f"dataferry-job-{job_id}", daemon=True
        )
        job.thread.start()
        return JobHandle(job_id)

    def status(self, handle: Optional[JobHandle] = None) -> ProgressSnapshot:
        """Last published snapshot of the current job. Never blocks on I/O."""
        with self._lock:
            return self._resolve(handle).snapshot

    def cancel(self, handle: Optional[JobHandle] = None) -> ProgressSnapshot:
        """Request cooperative cancellation, honoured at the next batch boundary."""
        with self._lock:
            job = self._resolve(handle)
            if not job.snapshot.is_terminal:
                job.cancel_requested.set()
                logger.info(f"Cancellation requested for job {job.job_id}")
            return job.snapshot

    def wait(
        self, handle: Optional[JobHandle] = None, timeout: Optional[float] = None
    ) -> ProgressSnapshot:
        """Block until the job is terminal or ``timeout`` elapses."""
        with self._lock:
            job = self._resolve(handle)
        if job.thread is not None and job.thread is not threading.current_thread():
            job.thread.join(timeout)
        return self.status(handle)

    def is_active(self) -> bool:
        with self._lock:
            return self._job is not None and not self._job.snapshot.is_terminal

    def current_job(self) -> Optional[JobHandle]:
        with self._lock:
            return JobHandle(self._job.job_id) if self._job is not None else None

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener for every published snapshot.

        Listeners run on the publishing thread and should return quickly.

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def reset(self, grace_period: Optional[float] = None) -> Optional[ProgressSnapshot]:
        """Cancel any active job, wait for it, then forget it.

        The worker gets ``grace_period`` seconds to reach a batch boundary;
        after that the job is marked cancelled regardless and the worker can
        no longer publish.

        Returns:
            Final snapshot of the forgotten job, or None if there was none
        """
        if grace_period is None:
            grace_period = self.settings.reset_grace_period

        with self._lock:
            job = self._job
        if job is None:
            return None

        if not job.snapshot.is_terminal:
            job.cancel_requested.set()
            if job.thread is not None and job.thread is not threading.current_thread():
                job.thread.join(grace_period)
            if self._finish(job, JobPhase.CANCELLED):
                logger.warning(
                    f"Job {job.job_id} did not stop within {grace_period}s; "
                    f"marked cancelled"
                )

        with self._lock:
            if self._job is job:
                self._job = None
            final = job.snapshot
        logger.debug(f"Engine reset; job {job.job_id} ended {final.phase.value}")
        return final

    def _resolve(self, handle: Optional[JobHandle]) -> _Job:
        job = self._job
        if job is None or (handle is not None and handle.job_id != job.job_id):
            raise UnknownJob(handle.job_id if handle is not None else "<none>")
        return job

    def _run(self, job: _Job) -> None:
        spec = job.spec
        sources = source_names(spec.resolved_mapping)
        targets = target_names(spec.resolved_mapping)
        rows = 0
        batches = 0

        def on_batch(chunk: DataChunk) -> bool:
            nonlocal rows, batches
            if job.cancel_requested.is_set():
                return False
            projected = self._mapper.project_chunk(chunk, spec.resolved_mapping)
            spec.target_adapter.accept_rows(
                spec.target_handle, spec.target_relation, targets, projected
            )
            rows += len(projected)
            batches += 1
            logger.debug(f"Job {job.job_id}: batch {batches} committed, {rows} rows")
            published = self._publish(job, rows_processed=rows, batches_committed=batches)
            return published and not job.cancel_requested.is_set()

        try:
            spec.target_adapter.prepare_target(
                spec.target_handle, spec.target_relation, targets
            )
            if job.cancel_requested.is_set():
                self._finish(job, JobPhase.CANCELLED)
                return
            if not self._publish(job, phase=JobPhase.RUNNING):
                return

            spec.source_adapter.stream_rows(
                spec.source_handle,
                spec.source_relation,
                sources,
                on_batch,
                job.batch_size,
            )
            if job.cancel_requested.is_set():
                self._finish(job, JobPhase.CANCELLED)
            else:
                self._finish(job, JobPhase.COMPLETED)
        except DataFerryError as e:
            logger.error(f"Job {job.job_id} failed after {rows} rows: {e}")
            self._finish(job, JobPhase.FAILED, error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.exception(f"Job {job.job_id} failed with an unexpected error")
            self._finish(job, JobPhase.FAILED, error=str(e) or repr(e), error_kind=TRANSFER)

    def _publish(self, job: _Job, **changes) -> bool:
        """Replace the job's snapshot and notify listeners.

        Returns False, publishing nothing, once the job is terminal.
        """
        with job.publish_lock:
            with self._lock:
                if job.snapshot.is_terminal:
                    return False
                snapshot = replace(job.snapshot, **changes)
                job.snapshot = snapshot
            self._notify(snapshot)
        return True

    def _finish(
        self,
        job: _Job,
        phase: JobPhase,
        error: Optional[str] = None,
        error_kind: Optional[str] = None,
    ) -> bool:
        finished = self._publish(
            job,
            phase=phase,
            ended_at=datetime.now(timezone.utc),
            last_error=error,
            error_kind=error_kind,
        )
        if finished:
            snapshot = job.snapshot
            logger.info(
                f"Job {job.job_id} {phase.value}: {snapshot.rows_processed} rows "
                f"in {snapshot.batches_committed} batches "
                f"({snapshot.elapsed_seconds():.2f}s)"
            )
        return finished

    def _notify(self, snapshot: ProgressSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Progress listener {listener!r} raised: {e}", exc_info=True)
