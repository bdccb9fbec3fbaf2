"""Encode job model and its status lifecycle.

A ``VideoJob`` is mutated by exactly one owner at a time: the worker thread
driving its encode, or the consumer applying pool messages to its own copy.
All status changes go through the ``mark_*`` / ``toggle_skip`` /
``reset_for_resume`` methods, which reject transitions the lifecycle does
not allow.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class InvalidTransitionError(Exception):
    """Raised when a job is asked to move to a status it cannot reach."""

    def __init__(self, job_id: str, current: JobStatus, target: JobStatus) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            f"Job {job_id}: cannot change status from {current.value} "
            f"to {target.value}"
        )


class JobStatus(Enum):
    """Lifecycle status of an encode job."""

    PENDING = "pending"
    CALIBRATING = "calibrating"  # Auto-VMAF probing encodes
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def parse(cls, value: str) -> JobStatus:
        """Accept both the stored value ("running") and the name ("Running")."""
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown job status: {value!r}") from None

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.RUNNING, JobStatus.CALIBRATING)


# Fields that only make sense for the current process and are never persisted.
_TRANSIENT_FIELDS = frozenset(
    {
        "started_at",
        "last_speed_update",
        "displayed_eta_seconds",
        "calibrating_total_steps",
        "calibrating_completed_steps",
    }
)


@dataclass
class VideoJob:
    """One input file to be encoded into one output file."""

    input_path: Path
    output_path: Path
    profile: str
    status: JobStatus = JobStatus.PENDING
    overwrite: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # Probed source duration in seconds, None when unknown
    duration_s: float | None = None

    # Runtime progress
    progress_pct: float = 0.0
    out_time_s: float = 0.0
    fps: float | None = None
    speed: float | None = None
    smoothed_speed: float | None = None
    bitrate_kbps: float | None = None
    size_bytes: int | None = None

    # time.monotonic() values; process-local
    started_at: float | None = None
    last_speed_update: float | None = None
    displayed_eta_seconds: int | None = None

    attempts: int = 0
    last_error: str | None = None
    # Why the scanner skipped the job, None for user skips
    skip_reason: str | None = None
    # A cancelled attempt left a truncated output behind
    partial_output: bool = False

    # Auto-VMAF calibration
    vmaf_target: float | None = None
    vmaf_result: float | None = None
    calibrated_quality: int | None = None
    vmaf_partial_scores: list[float] = field(default_factory=list)
    calibrating_total_steps: int | None = None
    calibrating_completed_steps: int = 0

    @property
    def filename(self) -> str:
        """Input file name, the key used by the completion ledger."""
        return self.input_path.name

    def _require(self, target: JobStatus, *allowed: JobStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(self.id, self.status, target)

    def _reset_progress(self) -> None:
        self.progress_pct = 0.0
        self.out_time_s = 0.0
        self.fps = None
        self.speed = None
        self.smoothed_speed = None
        self.bitrate_kbps = None
        self.size_bytes = None
        self.last_speed_update = None
        self.displayed_eta_seconds = None

    def mark_running(self, *, fresh: bool = True) -> None:
        """Start an attempt, or return to Running after calibration.

        Args:
            fresh: True when a new attempt starts from Pending. This bumps
                ``attempts`` and clears progress. False resumes the current
                attempt after calibration (Calibrating -> Running).

        Raises:
            InvalidTransitionError: If the job is not Pending (fresh) or
                Calibrating (not fresh).
        """
        if fresh:
            self._require(JobStatus.RUNNING, JobStatus.PENDING)
            self.attempts += 1
            self.started_at = time.monotonic()
            self.last_error = None
            self.partial_output = False
        else:
            self._require(JobStatus.RUNNING, JobStatus.CALIBRATING)
        self._reset_progress()
        self.status = JobStatus.RUNNING

    def mark_calibrating(self, total_steps: int | None = None) -> None:
        """Enter Auto-VMAF calibration."""
        self._require(JobStatus.CALIBRATING, JobStatus.PENDING, JobStatus.RUNNING)
        if self.status == JobStatus.PENDING:
            self.attempts += 1
            self.started_at = time.monotonic()
            self.partial_output = False
        self.status = JobStatus.CALIBRATING
        self.calibrating_total_steps = total_steps
        self.calibrating_completed_steps = 0
        self.vmaf_partial_scores = []
        self.vmaf_result = None

    def mark_done(self) -> None:
        self._require(JobStatus.DONE, JobStatus.RUNNING)
        self.status = JobStatus.DONE
        self.progress_pct = 100.0
        self.last_error = None

    def mark_failed(self, error: str) -> None:
        """Record a failed attempt.

        Pending is accepted so a worker that could not even start the
        encode still reports through the normal failure path.
        """
        self._require(
            JobStatus.FAILED,
            JobStatus.PENDING,
            JobStatus.RUNNING,
            JobStatus.CALIBRATING,
        )
        self.status = JobStatus.FAILED
        self.last_error = error

    def toggle_skip(self) -> JobStatus:
        """Flip a job between Skipped and Pending (or Failed -> Skipped).

        Returns:
            The new status.

        Raises:
            InvalidTransitionError: For Running, Calibrating and Done jobs.
        """
        if self.status == JobStatus.SKIPPED:
            self.status = JobStatus.PENDING
            self.skip_reason = None
        elif self.status in (JobStatus.PENDING, JobStatus.FAILED):
            if self.status == JobStatus.FAILED:
                self.last_error = None
            self.status = JobStatus.SKIPPED
        else:
            raise InvalidTransitionError(self.id, self.status, JobStatus.SKIPPED)
        return self.status

    def reset_for_resume(self) -> bool:
        """Make an interrupted or failed job runnable again after a restart.

        Returns:
            True if the job was changed.
        """
        if self.status not in (
            JobStatus.RUNNING,
            JobStatus.CALIBRATING,
            JobStatus.FAILED,
        ):
            return False
        self.status = JobStatus.PENDING
        self._reset_progress()
        self.started_at = None
        self.vmaf_result = None
        self.calibrated_quality = None
        self.vmaf_partial_scores = []
        self.calibrating_total_steps = None
        self.calibrating_completed_steps = 0
        return True

    def update_progress(
        self,
        progress_pct: float,
        out_time_s: float | None = None,
    ) -> None:
        """Apply a progress sample.

        While Running, ``progress_pct`` never moves backwards within one
        attempt; a smaller sample is ignored.
        """
        pct = max(0.0, min(100.0, progress_pct))
        if self.status == JobStatus.RUNNING and pct < self.progress_pct:
            pct = self.progress_pct
        self.progress_pct = pct
        if out_time_s is not None and out_time_s >= self.out_time_s:
            self.out_time_s = out_time_s

    def elapsed_seconds(self, now: float | None = None) -> float | None:
        if self.started_at is None:
            return None
        return (now if now is not None else time.monotonic()) - self.started_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (transient fields omitted)."""
        return {
            "id": self.id,
            "input_path": str(self.input_path),
            "output_path": str(self.output_path),
            "profile": self.profile,
            "status": self.status.value,
            "overwrite": self.overwrite,
            "duration_s": self.duration_s,
            "progress_pct": self.progress_pct,
            "out_time_s": self.out_time_s,
            "fps": self.fps,
            "speed": self.speed,
            "smoothed_speed": self.smoothed_speed,
            "bitrate_kbps": self.bitrate_kbps,
            "size_bytes": self.size_bytes,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "skip_reason": self.skip_reason,
            "partial_output": self.partial_output,
            "vmaf_target": self.vmaf_target,
            "vmaf_result": self.vmaf_result,
            "calibrated_quality": self.calibrated_quality,
            "vmaf_partial_scores": list(self.vmaf_partial_scores),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VideoJob:
        """Build a job from ``to_dict`` output.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If the status is unknown.
        """
        known = {
            k: v
            for k, v in data.items()
            if k in cls.__dataclass_fields__ and k not in _TRANSIENT_FIELDS
        }
        known["input_path"] = Path(data["input_path"])
        known["output_path"] = Path(data["output_path"])
        known["profile"] = data["profile"]
        known["status"] = JobStatus.parse(str(data.get("status", "pending")))
        known["vmaf_partial_scores"] = [
            float(s) for s in data.get("vmaf_partial_scores") or []
        ]
        if "id" in data:
            known["id"] = str(data["id"])
        return cls(**known)
