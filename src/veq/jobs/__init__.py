"""Job execution: worker pool, progress tracking and queue persistence."""

from veq.jobs.ledger import load_ledger, save_ledger
from veq.jobs.messages import (
    JobCompleted,
    JobFailed,
    JobStarted,
    ProgressUpdate,
    WorkerIdle,
    WorkerMessage,
)
from veq.jobs.pool import PoolSaturatedError, WorkerPool, render_error
from veq.jobs.runner import QueueRunner, QueueSummary
from veq.jobs.state import EncState, StateError, load_state, save_state
from veq.jobs.tracking import apply_message

__all__ = [
    "EncState",
    "JobCompleted",
    "JobFailed",
    "JobStarted",
    "PoolSaturatedError",
    "ProgressUpdate",
    "QueueRunner",
    "QueueSummary",
    "StateError",
    "WorkerIdle",
    "WorkerMessage",
    "WorkerPool",
    "apply_message",
    "load_ledger",
    "load_state",
    "render_error",
    "save_ledger",
    "save_state",
]
