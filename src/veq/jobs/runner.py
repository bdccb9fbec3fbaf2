"""Queue runner: feeds pending jobs to a WorkerPool until the queue drains.

The runner owns the consumer-side job list. It spawns workers while slots
are free, folds worker messages into its jobs and persists the queue
(``.enc_state`` and ``.enc_queue``) after every finished job, so an
interrupted run can be resumed from the same directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from veq.domain.models import JobStatus, VideoJob
from veq.jobs.ledger import save_ledger
from veq.jobs.messages import JobCompleted, JobFailed, WorkerIdle, WorkerMessage
from veq.jobs.state import EncState, save_state
from veq.jobs.tracking import apply_message

if TYPE_CHECKING:
    from collections.abc import Callable

    from veq.jobs.pool import WorkerPool
    from veq.profiles.models import HwEncodingConfig, Profile
    from veq.tools.hardware import CapabilityMatrix

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5


@dataclass
class QueueSummary:
    """Counts for one run of the queue.

    Attributes:
        completed: Jobs that finished successfully in this run.
        failed: Jobs that failed in this run.
        skipped: Jobs not run because they were Skipped or already Done.
        interrupted: True if the run was stopped by KeyboardInterrupt.
    """

    completed: int = 0
    failed: int = 0
    skipped: int = 0
    interrupted: bool = False

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.interrupted


class QueueRunner:
    """Runs every Pending job of a queue through a worker pool."""

    def __init__(
        self,
        jobs: list[VideoJob],
        profile: Profile,
        pool: WorkerPool,
        *,
        root: Path | None = None,
        capabilities: CapabilityMatrix | None = None,
        hw_config: HwEncodingConfig | None = None,
        on_message: Callable[[VideoJob | None, WorkerMessage], None] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the runner.

        Args:
            jobs: Queue in run order; updated in place as messages arrive.
            profile: Profile every job is encoded with.
            pool: Pool the encodes run on.
            root: Directory to persist queue state into; None disables it.
            capabilities: Host capabilities for encoder selection.
            hw_config: Hardware rate control override.
            on_message: Called with the updated job (None for idle
                messages) after each message is applied.
            poll_interval: Seconds to wait for a message per loop.
        """
        self.jobs = jobs
        self.profile = profile
        self.pool = pool
        self.root = root
        self.capabilities = capabilities
        self.hw_config = hw_config
        self.on_message = on_message
        self.poll_interval = poll_interval
        self._jobs_by_id = {job.id: job for job in jobs}
        self._busy_slots: set[int] = set()
        self._summary = QueueSummary()

    def persist(self) -> None:
        """Save ``.enc_state`` and ``.enc_queue`` when a root is set."""
        if self.root is None:
            return
        save_state(
            EncState(
                jobs=self.jobs,
                selected_profile=self.profile.name,
                root_path=self.root,
                profile_config=self.profile,
            ),
            self.root,
        )
        save_ledger(self.root, self.jobs)

    def _next_slot(self) -> int:
        slot = 0
        while slot in self._busy_slots:
            slot += 1
        return slot

    def _spawn_ready(self, pending: list[VideoJob]) -> None:
        while pending and self.pool.can_spawn():
            job = pending.pop(0)
            slot = self._next_slot()
            self.pool.spawn_worker(
                slot,
                job,
                hw_config=self.hw_config,
                profile=self.profile,
                capabilities=self.capabilities,
            )
            self._busy_slots.add(slot)
            logger.debug("Worker %d started %s", slot, job.input_path.name)

    def _handle(self, message: WorkerMessage) -> None:
        job = apply_message(self._jobs_by_id, message)
        if isinstance(message, WorkerIdle):
            self._busy_slots.discard(message.worker_id)
        elif isinstance(message, JobCompleted):
            self._summary.completed += 1
            self.persist()
        elif isinstance(message, JobFailed):
            self._summary.failed += 1
            self.persist()
        if self.on_message is not None:
            self.on_message(job, message)

    def run(self) -> QueueSummary:
        """Run until no job is pending and every worker has gone idle.

        On KeyboardInterrupt the running encodes are stopped and the queue
        is saved with those jobs still Running, so loading the state later
        resets them and removes their partial outputs.
        """
        pending = [job for job in self.jobs if job.status is JobStatus.PENDING]
        self._summary.skipped = len(self.jobs) - len(pending)
        logger.info(
            "Starting queue: %d pending, %d skipped, %d worker(s)",
            len(pending),
            self._summary.skipped,
            self.pool.max_workers,
        )
        self.persist()
        try:
            while pending or self._busy_slots:
                self._spawn_ready(pending)
                for message in self.pool.drain(timeout=self.poll_interval):
                    self._handle(message)
        except KeyboardInterrupt:
            logger.warning("Interrupted; stopping running encodes")
            self._summary.interrupted = True
            self.persist()
            self.pool.kill_all_running()
            return self._summary

        self.persist()
        logger.info(
            "Queue finished: %d completed, %d failed",
            self._summary.completed,
            self._summary.failed,
        )
        return self._summary
