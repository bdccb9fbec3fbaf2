"""Messages sent from pool workers to the consumer thread."""

from __future__ import annotations

from dataclasses import dataclass

from veq.domain.models import JobStatus, VideoJob


@dataclass(frozen=True)
class JobStarted:
    job_id: str


@dataclass(frozen=True)
class ProgressUpdate:
    """Snapshot of a running job's progress fields."""

    job_id: str
    progress_pct: float
    out_time_s: float
    fps: float | None
    speed: float | None
    bitrate_kbps: float | None
    size_bytes: int | None
    vmaf_result: float | None
    vmaf_target: float | None
    status: JobStatus

    @classmethod
    def from_job(cls, job: VideoJob) -> ProgressUpdate:
        return cls(
            job_id=job.id,
            progress_pct=job.progress_pct,
            out_time_s=job.out_time_s,
            fps=job.fps,
            speed=job.speed,
            bitrate_kbps=job.bitrate_kbps,
            size_bytes=job.size_bytes,
            vmaf_result=job.vmaf_result,
            vmaf_target=job.vmaf_target,
            status=job.status,
        )


@dataclass(frozen=True)
class JobCompleted:
    job_id: str


@dataclass(frozen=True)
class JobFailed:
    """The encode failed; ``partial_output`` marks a kept truncated file."""

    job_id: str
    error: str
    partial_output: bool = False


@dataclass(frozen=True)
class WorkerIdle:
    """The worker finished its job and released its pool slot."""

    worker_id: int


WorkerMessage = JobStarted | ProgressUpdate | JobCompleted | JobFailed | WorkerIdle
