"""Result reporting for sync runs."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class UploadOutcome(Enum):
    """Terminal outcome of one file upload."""

    UPLOADED = "uploaded"
    FAILED = "failed"
    LOCKED = "locked"


@dataclass(frozen=True)
class SyncReport:
    """Summary of a finished sync run.

    ``failed_paths`` holds absolute local paths so a failure can be traced
    back to the source; ``uploaded_paths`` holds the relative destination
    paths.
    """

    uploaded_count: int = 0
    uploaded_paths: tuple[str, ...] = ()
    failed_count: int = 0
    failed_paths: tuple[str, ...] = ()
    failed_folder_creations: int = 0
    locked_count: int = 0
    error_message: Optional[str] = None

    @property
    def total_files(self) -> int:
        return self.uploaded_count + self.failed_count

    @property
    def has_failures(self) -> bool:
        return self.error_message is not None or self.failed_count > 0

    def to_dict(self) -> dict:
        """Convert the report to a dictionary for JSON output."""
        return {
            "uploads": self.uploaded_count,
            "upload_list": list(self.uploaded_paths),
            "failures": self.failed_count,
            "failed_list": list(self.failed_paths),
            "failed_folder_creations": self.failed_folder_creations,
            "locked_files": self.locked_count,
            "error_message": self.error_message,
        }

    def to_outputs(self) -> dict[str, str]:
        """Render the report as workflow output values."""
        outputs = {
            "upload_successes": str(self.uploaded_count),
            "upload_list": ", ".join(self.uploaded_paths),
            "upload_failures": str(self.failed_count),
            "upload_failed_list": ", ".join(self.failed_paths),
            "upload_failed_locked": str(self.locked_count),
        }
        if self.error_message:
            outputs["error_message"] = self.error_message
        return outputs


@dataclass
class ReportAggregator:
    """Accumulates per-item outcomes of one sync run.

    One aggregator belongs to one run; components receive it from the run
    and record into it. :meth:`build` hands out an immutable snapshot.
    """

    _uploaded: list[str] = field(default_factory=list)
    _failed: list[str] = field(default_factory=list)
    _failure_reasons: dict[str, str] = field(default_factory=dict)
    _failed_folder_creations: int = 0
    _locked: int = 0
    _error_message: Optional[str] = None

    def record_upload(self, relative_path: str) -> None:
        self._uploaded.append(relative_path)

    def record_failure(self, path: str, reason: str) -> None:
        """Record a file that could not be uploaded."""
        self._failed.append(path)
        self._failure_reasons[path] = reason

    def record_outcome(
        self,
        outcome: UploadOutcome,
        relative_path: str,
        path: str,
        reason: str = "",
    ) -> None:
        """Record the terminal outcome of one file.

        Locked files count as failures; the lock itself is counted when the
        locked response is seen (see :meth:`record_locked`).
        """
        if outcome is UploadOutcome.UPLOADED:
            self.record_upload(relative_path)
        else:
            self.record_failure(path, reason)

    def record_locked(self) -> None:
        self._locked += 1

    def record_folder_failure(self) -> None:
        self._failed_folder_creations += 1

    def set_error(self, message: str) -> None:
        self._error_message = message

    def failure_reason(self, path: str) -> Optional[str]:
        return self._failure_reasons.get(path)

    @property
    def failed_count(self) -> int:
        return len(self._failed)

    def build(self) -> SyncReport:
        """Snapshot the accumulated outcomes into a SyncReport."""
        return SyncReport(
            uploaded_count=len(self._uploaded),
            uploaded_paths=tuple(self._uploaded),
            failed_count=len(self._failed),
            failed_paths=tuple(self._failed),
            failed_folder_creations=self._failed_folder_creations,
            locked_count=self._locked,
            error_message=self._error_message,
        )
