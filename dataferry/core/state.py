"""On-disk job state shared between CLI processes.

``dataferry start`` writes each snapshot here; ``dataferry status`` reads it
back and ``dataferry cancel`` drops a marker file that the running ``start``
process polls.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from dataferry.core.models import ProgressSnapshot
from dataferry.exceptions import ValidationError
from dataferry.logging import get_logger

logger = get_logger(__name__)

SNAPSHOT_FILE = "job.json"
CANCEL_MARKER = "cancel.request"


class JobStateStore:
    """Latest snapshot of the most recent job plus a cancel-request marker."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    @property
    def snapshot_path(self) -> Path:
        return self.directory / SNAPSHOT_FILE

    @property
    def cancel_path(self) -> Path:
        return self.directory / CANCEL_MARKER

    def save(self, snapshot: ProgressSnapshot) -> None:
        """Write ``snapshot`` atomically, replacing the previous one."""
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.directory, prefix=".job-", suffix=".json.tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_path, self.snapshot_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def load(self) -> Optional[ProgressSnapshot]:
        """The last saved snapshot, or None if no job has been recorded."""
        if not self.snapshot_path.exists():
            return None
        try:
            with open(self.snapshot_path, "r", encoding="utf-8") as f:
                return ProgressSnapshot.from_dict(json.load(f))
        except (ValueError, KeyError) as e:
            raise ValidationError(
                f"Job state file {self.snapshot_path} is corrupt: {e}"
            ) from e

    def request_cancel(self, job_id: Optional[str] = None) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.cancel_path.write_text(job_id or "", encoding="utf-8")
        logger.debug(f"Cancel requested via {self.cancel_path}")

    def cancel_requested(self, job_id: Optional[str] = None) -> bool:
        """Whether a cancel request is pending for ``job_id`` (or any job)."""
        if not self.cancel_path.exists():
            return False
        requested = self.cancel_path.read_text(encoding="utf-8").strip()
        return not requested or job_id is None or requested == job_id

    def clear_cancel(self) -> None:
        if self.cancel_path.exists():
            self.cancel_path.unlink()
