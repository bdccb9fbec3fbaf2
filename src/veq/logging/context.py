"""Per-worker logging context.

Pool workers run each encode inside ``worker_context`` so every log record
emitted while the job runs carries the worker slot, job id and input path.
Values live in contextvars, so concurrent worker threads never see each
other's context.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

_worker_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "veq_worker_id", default=None
)
_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "veq_job_id", default=None
)
_file_path: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "veq_file_path", default=None
)

# Job ids are uuid4 strings; the text tag only shows this many characters.
JOB_TAG_LENGTH = 8


def set_worker_context(
    worker_id: str | int,
    job_id: str | None = None,
    file_path: Path | str | None = None,
) -> None:
    """Bind worker, job and file to the current context.

    Args:
        worker_id: Pool slot number or name.
        job_id: Id of the job being encoded.
        file_path: Input file of the job.
    """
    _worker_id.set(str(worker_id))
    _job_id.set(job_id)
    _file_path.set(str(file_path) if file_path is not None else None)


def clear_worker_context() -> None:
    """Remove any worker binding from the current context."""
    _worker_id.set(None)
    _job_id.set(None)
    _file_path.set(None)


@contextmanager
def worker_context(
    worker_id: str | int,
    job_id: str | None = None,
    file_path: Path | str | None = None,
) -> Iterator[None]:
    """Bind worker context for the duration of a ``with`` block.

    The previous binding is restored on exit, so nesting is safe.

    Example:
        with worker_context(2, job.id, job.input_path):
            logger.info("Starting encode")
    """
    tokens = (
        _worker_id.set(str(worker_id)),
        _job_id.set(job_id),
        _file_path.set(str(file_path) if file_path is not None else None),
    )
    try:
        yield
    finally:
        _worker_id.reset(tokens[0])
        _job_id.reset(tokens[1])
        _file_path.reset(tokens[2])


def get_worker_context() -> tuple[str | None, str | None, str | None]:
    """Return ``(worker_id, job_id, file_path)`` for the current context."""
    return _worker_id.get(), _job_id.get(), _file_path.get()


class WorkerContextFilter(logging.Filter):
    """Copy the worker context onto every log record.

    Sets ``worker_id``, ``job_id`` and ``file_path`` attributes for the JSON
    formatter and a compact ``worker_tag`` such as ``[W2:1f0c9a3e] `` for the
    text format. Records are never dropped.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        worker_id, job_id, file_path = get_worker_context()
        record.worker_id = worker_id
        record.job_id = job_id
        record.file_path = file_path

        if worker_id is None:
            record.worker_tag = ""
        elif job_id:
            record.worker_tag = f"[W{worker_id}:{job_id[:JOB_TAG_LENGTH]}] "
        else:
            record.worker_tag = f"[W{worker_id}] "
        return True
