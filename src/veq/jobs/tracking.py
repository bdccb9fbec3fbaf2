"""Consumer-side application of worker messages.

The consumer keeps its own copies of the jobs and folds worker messages into
them here. Speed is smoothed with an EWMA sampled at most every
``SPEED_SAMPLE_INTERVAL`` seconds, and the displayed ETA only moves when
the new estimate differs noticeably, so a dashboard does not flicker.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from veq.domain.models import JobStatus, VideoJob
from veq.jobs.messages import (
    JobCompleted,
    JobFailed,
    JobStarted,
    ProgressUpdate,
    WorkerMessage,
)

logger = logging.getLogger(__name__)

SPEED_ALPHA = 0.1
SPEED_SAMPLE_INTERVAL = 2.0
ETA_MIN_CHANGE_SECONDS = 2
ETA_MIN_CHANGE_RATIO = 0.05


def update_smoothed_speed(job: VideoJob, speed: float | None, now: float) -> None:
    """Fold a raw speed sample into ``job.smoothed_speed``."""
    job.speed = speed
    if speed is None or speed <= 0:
        return
    if (
        job.last_speed_update is not None
        and now - job.last_speed_update < SPEED_SAMPLE_INTERVAL
    ):
        return
    if job.smoothed_speed is None:
        job.smoothed_speed = speed
    else:
        previous = job.smoothed_speed
        job.smoothed_speed = SPEED_ALPHA * speed + (1 - SPEED_ALPHA) * previous
    job.last_speed_update = now


def raw_eta_seconds(job: VideoJob) -> int | None:
    """Remaining output time divided by smoothed speed, None when unknown."""
    speed = job.smoothed_speed or job.speed
    if not job.duration_s or not speed or speed <= 0:
        return None
    remaining = max(0.0, job.duration_s - job.out_time_s)
    return int(round(remaining / speed))


def update_displayed_eta(job: VideoJob) -> int | None:
    """Refresh ``job.displayed_eta_seconds`` with hysteresis.

    Returns:
        The ETA to display, or None when it cannot be estimated.
    """
    new_eta = raw_eta_seconds(job)
    if new_eta is None:
        return job.displayed_eta_seconds
    old_eta = job.displayed_eta_seconds
    if old_eta is None:
        job.displayed_eta_seconds = new_eta
    else:
        diff = abs(new_eta - old_eta)
        if (
            diff > ETA_MIN_CHANGE_SECONDS
            or diff / max(old_eta, 1) > ETA_MIN_CHANGE_RATIO
        ):
            job.displayed_eta_seconds = new_eta
    return job.displayed_eta_seconds


def _apply_progress(job: VideoJob, message: ProgressUpdate, now: float) -> None:
    if message.status in (JobStatus.RUNNING, JobStatus.CALIBRATING):
        if message.status is not job.status:
            # Calibration and the final encode are separate progress runs
            job.progress_pct = 0.0
            job.out_time_s = 0.0
            job.speed = None
            job.smoothed_speed = None
            job.last_speed_update = None
            job.displayed_eta_seconds = None
            job.status = message.status
    job.update_progress(message.progress_pct, message.out_time_s)
    job.fps = message.fps
    job.bitrate_kbps = message.bitrate_kbps
    job.size_bytes = message.size_bytes
    job.vmaf_result = message.vmaf_result
    if message.vmaf_target is not None:
        job.vmaf_target = message.vmaf_target
    update_smoothed_speed(job, message.speed, now)
    update_displayed_eta(job)


def apply_message(
    jobs_by_id: Mapping[str, VideoJob],
    message: WorkerMessage,
    now: float | None = None,
) -> VideoJob | None:
    """Apply one worker message to the consumer's job.

    Args:
        jobs_by_id: Consumer job copies keyed by id.
        message: Message received from the pool.
        now: ``time.monotonic()`` value to use; read from the clock if None.

    Returns:
        The job the message changed, or None for ``WorkerIdle`` and
        messages about unknown jobs.
    """
    job_id = getattr(message, "job_id", None)
    if job_id is None:
        return None
    job = jobs_by_id.get(job_id)
    if job is None:
        logger.debug("Message for unknown job %s ignored", job_id)
        return None
    now = time.monotonic() if now is None else now

    if isinstance(message, JobStarted):
        if job.status is JobStatus.PENDING:
            job.mark_running()
        else:
            job.status = JobStatus.RUNNING
        job.started_at = now
    elif isinstance(message, ProgressUpdate):
        _apply_progress(job, message, now)
    elif isinstance(message, JobCompleted):
        job.status = JobStatus.DONE
        job.progress_pct = 100.0
        job.displayed_eta_seconds = 0
        job.last_error = None
    elif isinstance(message, JobFailed):
        job.status = JobStatus.FAILED
        job.last_error = message.error
        job.partial_output = message.partial_output
        job.displayed_eta_seconds = None
    return job
