"""Logging setup: text or JSON output, file rotation, worker context."""

from veq.logging.config import configure_logging
from veq.logging.context import (
    WorkerContextFilter,
    clear_worker_context,
    get_worker_context,
    set_worker_context,
    worker_context,
)
from veq.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "WorkerContextFilter",
    "clear_worker_context",
    "configure_logging",
    "get_worker_context",
    "set_worker_context",
    "worker_context",
]
