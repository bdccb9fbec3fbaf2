"""Domain models shared across the engine."""

from veq.domain.models import InvalidTransitionError, JobStatus, VideoJob

__all__ = ["InvalidTransitionError", "JobStatus", "VideoJob"]
