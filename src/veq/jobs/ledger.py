"""Human-readable completion ledger (``<root>/.enc_queue``).

One line per job. Completed entries are commented out, so the file doubles
as a to-do list a user can edit by hand::

    # veq encoding queue - lines with # prefix are completed
    # done.mkv
    # exists.mkv (skipped - output exists)
    pending.mkv
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from veq.core.file_utils import atomic_write_text
from veq.domain.models import JobStatus, VideoJob

logger = logging.getLogger(__name__)

LEDGER_FILENAME = ".enc_queue"
LEDGER_HEADER = "# veq encoding queue - lines with # prefix are completed"
DEFAULT_SKIP_REASON = "output exists"


def ledger_path(root: Path) -> Path:
    return root / LEDGER_FILENAME


def format_ledger(jobs: Iterable[VideoJob]) -> str:
    lines = [LEDGER_HEADER]
    for job in jobs:
        if job.status is JobStatus.DONE:
            lines.append(f"# {job.filename}")
        elif job.status is JobStatus.SKIPPED:
            reason = job.skip_reason or DEFAULT_SKIP_REASON
            lines.append(f"# {job.filename} (skipped - {reason})")
        else:
            lines.append(job.filename)
    return "\n".join(lines) + "\n"


def save_ledger(root: Path, jobs: Iterable[VideoJob]) -> bool:
    """Write the ledger. Failures are logged and reported as False."""
    path = ledger_path(root)
    try:
        atomic_write_text(path, format_ledger(jobs))
    except OSError as e:
        logger.error("Failed to save queue ledger to %s: %s", path, e)
        return False
    return True


def parse_completed(text: str) -> set[str]:
    """File names marked completed in ledger text."""
    completed: set[str] = set()
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped.startswith("#") or stripped == LEDGER_HEADER:
            continue
        name = stripped.lstrip("#").strip()
        # Only the annotation the writer adds is stripped; names may
        # legitimately contain " (".
        name = name.split(" (skipped", 1)[0]
        if name:
            completed.add(name)
    return completed


def load_ledger(root: Path, jobs: Iterable[VideoJob]) -> int:
    """Mark jobs listed as completed in the ledger as Done.

    Args:
        root: Directory holding the ledger.
        jobs: Jobs to update in place, matched by input file name.

    Returns:
        Number of jobs upgraded to Done. Zero when there is no ledger.
    """
    path = ledger_path(root)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return 0
    except OSError as e:
        logger.warning("Cannot read queue ledger %s: %s", path, e)
        return 0

    completed = parse_completed(text)
    upgraded = 0
    for job in jobs:
        if job.filename in completed and job.status is not JobStatus.DONE:
            job.status = JobStatus.DONE
            job.progress_pct = 100.0
            upgraded += 1
    if upgraded:
        logger.info("Marked %d job(s) done from %s", upgraded, path)
    return upgraded
