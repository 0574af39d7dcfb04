"""Error hierarchy for dataferry.

Every error carries a ``kind`` so that a failed job can report what went
wrong without holding on to the exception object itself.
"""

from typing import Optional

CONNECTION = "connection"
SCHEMA = "schema"
VALIDATION = "validation"
TRANSFER = "transfer"


class DataFerryError(Exception):
    """Base exception for all dataferry errors."""

    kind = TRANSFER

    def __init__(self, message: str, endpoint: Optional[str] = None):
        self.message = message
        self.endpoint = endpoint
        if endpoint:
            super().__init__(f"[{endpoint}] {message}")
        else:
            super().__init__(message)


class EndpointConnectionError(DataFerryError):
    """Authentication or network failure while connecting to an endpoint."""

    kind = CONNECTION


class SchemaError(DataFerryError):
    """A relation or column is missing at discovery or mapping time."""

    kind = SCHEMA


class ValidationError(DataFerryError):
    """Locally recoverable misuse; never affects a running job."""

    kind = VALIDATION


class InvalidTransition(ValidationError):
    """Raised when a workflow event is not legal in the current phase."""

    def __init__(self, current_phase, requested, reason: Optional[str] = None):
        self.current_phase = current_phase
        self.requested = requested
        message = f"Cannot move from {_label(current_phase)} to {_label(requested)}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class EmptyMapping(ValidationError):
    """Raised when finalizing a mapping that would transfer nothing."""

    def __init__(self, message: str = "No source column is mapped to a target"):
        super().__init__(message)


class UnknownSource(ValidationError):
    """Raised when a mapping override names a source column not in the mapping."""

    def __init__(self, source_name: str):
        self.source_name = source_name
        super().__init__(f"Source column '{source_name}' is not part of the mapping")


class UnknownTarget(ValidationError):
    """Raised when a mapping override names a column absent from the target."""

    def __init__(self, target_name: str):
        self.target_name = target_name
        super().__init__(f"Target column '{target_name}' does not exist")


class JobAlreadyRunning(ValidationError):
    """Raised when a job is started while another one is still active."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is still active")


class UnknownJob(ValidationError):
    """Raised when a job handle does not refer to the engine's current job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is not known to this engine")


class TransferError(DataFerryError):
    """I/O failure while moving rows; terminal for the current job."""

    kind = TRANSFER


def _label(phase) -> str:
    return getattr(phase, "value", str(phase))


__all__ = [
    "CONNECTION",
    "SCHEMA",
    "VALIDATION",
    "TRANSFER",
    "DataFerryError",
    "EndpointConnectionError",
    "SchemaError",
    "ValidationError",
    "InvalidTransition",
    "EmptyMapping",
    "UnknownSource",
    "UnknownTarget",
    "JobAlreadyRunning",
    "UnknownJob",
    "TransferError",
]
