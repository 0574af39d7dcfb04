"""Operations behind the CLI commands.

Each function does one thing and raises; presentation and exit codes are the
commands' business.
"""

import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from dataferry.adapters import get_adapter
from dataferry.adapters.base.adapter import ConnectionHandle, EndpointKind, SchemaAdapter
from dataferry.cli.errors import (
    DirectionError,
    EndpointNotFoundError,
    MappingOptionError,
    ProfileNotFoundError,
)
from dataferry.core.models import ProgressSnapshot, TransferDirection
from dataferry.core.profiles import EndpointProfile, Profile, load_profile
from dataferry.core.state import JobStateStore
from dataferry.core.workflow import WorkflowOrchestrator, WorkflowPhase
from dataferry.logging import get_logger
from dataferry.utils.env import find_project_root

logger = get_logger(__name__)

STATE_DIR_NAME = ".dataferry"

# Endpoint params holding filesystem paths, resolved against the project dir
PATH_PARAMS = ("path", "database")


def resolve_project_dir(project_dir: Optional[str] = None) -> Path:
    if project_dir:
        return Path(project_dir).resolve()
    return find_project_root() or Path(os.getcwd()).resolve()


def resolve_state_dir(project_dir: Path, state_dir: Optional[str] = None) -> Path:
    return Path(state_dir).resolve() if state_dir else project_dir / STATE_DIR_NAME


def load_profile_for_command(project_dir: Path, profile_name: str) -> Profile:
    """Load a profile, turning a missing file into ``ProfileNotFoundError``."""
    try:
        return load_profile(str(project_dir), profile_name)
    except FileNotFoundError:
        profiles_dir = project_dir / "profiles"
        available = []
        if profiles_dir.is_dir():
            available = sorted(
                p.stem for p in profiles_dir.iterdir() if p.suffix in (".yml", ".yaml")
            )
        raise ProfileNotFoundError(profile_name, available, str(profiles_dir)) from None


def resolve_endpoint(profile: Profile, name: str) -> EndpointProfile:
    if name not in profile.endpoints:
        raise EndpointNotFoundError(name, sorted(profile.endpoints))
    return profile.endpoints[name]


def endpoint_params(endpoint: EndpointProfile, project_dir: Path) -> Dict[str, Any]:
    """Endpoint params with relative paths made relative to the project."""
    params = dict(endpoint.params)
    for key in PATH_PARAMS:
        value = params.get(key)
        if isinstance(value, str) and value != ":memory:" and not os.path.isabs(value):
            params[key] = str(project_dir / value)
    return params


def open_endpoint(
    endpoint: EndpointProfile, project_dir: Path
) -> Tuple[SchemaAdapter, ConnectionHandle]:
    adapter = get_adapter(endpoint.endpoint_type)
    handle = adapter.connect(endpoint_params(endpoint, project_dir))
    return adapter, handle


def parse_mapping_options(
    maps: Sequence[str], excludes: Sequence[str]
) -> List[Tuple[str, Optional[str]]]:
    """Turn ``--map SRC=TGT`` and ``--exclude SRC`` options into overrides."""
    overrides: List[Tuple[str, Optional[str]]] = []
    for option in maps:
        source, sep, target = option.partition("=")
        if not sep or not source.strip() or not target.strip():
            raise MappingOptionError(option)
        overrides.append((source.strip(), target.strip()))
    overrides.extend((source, None) for source in excludes)
    return overrides


def parse_column_option(columns: Optional[str]) -> Optional[List[str]]:
    if not columns:
        return None
    return [c.strip() for c in columns.split(",") if c.strip()]


def build_orchestrator(
    profile: Profile, source: EndpointProfile, target: EndpointProfile
) -> Tuple[WorkflowOrchestrator, TransferDirection]:
    """Create an orchestrator for ``source`` -> ``target`` and pick the direction."""
    source_adapter = get_adapter(source.endpoint_type)
    target_adapter = get_adapter(target.endpoint_type)

    kinds = (source_adapter.kind, target_adapter.kind)
    if kinds == (EndpointKind.STORE, EndpointKind.FILE):
        direction = TransferDirection.STORE_TO_FILE
        store_adapter, file_adapter = source_adapter, target_adapter
    elif kinds == (EndpointKind.FILE, EndpointKind.STORE):
        direction = TransferDirection.FILE_TO_STORE
        store_adapter, file_adapter = target_adapter, source_adapter
    else:
        raise DirectionError(source.name, target.name)

    orchestrator = WorkflowOrchestrator(
        store_adapter, file_adapter, settings=profile.transfer
    )
    return orchestrator, direction


def prepare_transfer(
    orchestrator: WorkflowOrchestrator,
    direction: TransferDirection,
    source_params: Dict[str, Any],
    target_params: Dict[str, Any],
    table: str,
    columns: Optional[List[str]] = None,
    overrides: Sequence[Tuple[str, Optional[str]]] = (),
) -> None:
    """Walk the workflow from direction selection up to the preview."""
    orchestrator.select_direction(direction)
    orchestrator.connect_source(source_params)
    if direction is TransferDirection.STORE_TO_FILE:
        orchestrator.select_relation(table)
        orchestrator.select_columns(columns)
        orchestrator.connect_target(target_params)
        return

    orchestrator.select_columns(columns)
    orchestrator.connect_target(target_params)
    orchestrator.select_relation(table)
    for source_name, target_name in overrides:
        orchestrator.set_mapping_target(source_name, target_name)
    orchestrator.confirm_mapping()


def run_transfer(
    orchestrator: WorkflowOrchestrator,
    store: JobStateStore,
    poll_interval: float = 0.2,
    on_progress: Optional[Callable[[ProgressSnapshot], None]] = None,
) -> ProgressSnapshot:
    """Start the transfer and block until it ends.

    Snapshots are saved to ``store`` as they are published. A cancel request
    left in ``store`` by another process cancels the job. On
    KeyboardInterrupt the job is cancelled and allowed to stop before the
    interrupt propagates.
    """
    store.clear_cancel()
    unsubscribe = orchestrator.engine.subscribe(store.save)
    try:
        handle = orchestrator.start_transfer()
        cancel_sent = False
        try:
            while True:
                snapshot = orchestrator.wait(poll_interval)
                if on_progress is not None:
                    on_progress(snapshot)
                if snapshot.is_terminal:
                    return snapshot
                if not cancel_sent and store.cancel_requested(handle.job_id):
                    logger.info(f"Cancel request found for job {handle.job_id}")
                    orchestrator.cancel_transfer()
                    cancel_sent = True
        except KeyboardInterrupt:
            if orchestrator.phase is WorkflowPhase.INGESTING:
                logger.warning("Interrupted; cancelling transfer")
                orchestrator.cancel_transfer()
                orchestrator.wait(orchestrator.settings.reset_grace_period)
            raise
    finally:
        unsubscribe()
        store.clear_cancel()


def wait_for_terminal(
    store: JobStateStore, timeout: float, poll_interval: float = 0.1
) -> Optional[ProgressSnapshot]:
    """Poll ``store`` until its snapshot is terminal or ``timeout`` passes."""
    deadline = time.monotonic() + timeout
    snapshot = store.load()
    while (
        snapshot is not None
        and not snapshot.is_terminal
        and time.monotonic() < deadline
    ):
        time.sleep(poll_interval)
        snapshot = store.load()
    return snapshot
