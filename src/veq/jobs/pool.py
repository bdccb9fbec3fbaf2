"""Bounded pool of encode worker threads.

Each spawned worker encodes one job on its own thread and reports back
through ``WorkerPool.messages``. For every job the consumer sees
``JobStarted``, any number of ``ProgressUpdate``, exactly one of
``JobCompleted`` / ``JobFailed``, then ``WorkerIdle``. The slot is released
before ``WorkerIdle`` is sent, so ``can_spawn()`` is already true when the
consumer receives it.
"""

from __future__ import annotations

import copy
import logging
import queue
import threading
from collections.abc import Callable
from typing import Any

from veq.config import VeqConfig, get_config
from veq.domain.models import VideoJob
from veq.executor.transcode import ProcessRegistry, encode_job
from veq.jobs.messages import (
    JobCompleted,
    JobFailed,
    JobStarted,
    ProgressUpdate,
    WorkerIdle,
    WorkerMessage,
)
from veq.logging import worker_context
from veq.profiles.models import HwEncodingConfig, Profile
from veq.profiles.store import resolve_profile
from veq.tools.ffmpeg_progress import ProgressSnapshot
from veq.tools.hardware import CapabilityMatrix

logger = logging.getLogger(__name__)

EncodeFn = Callable[..., Any]


class PoolSaturatedError(Exception):
    """Raised when a worker is spawned while every slot is busy."""


def render_error(error: BaseException) -> str:
    """Render an exception and its causes as ``"outer: cause: root"``."""
    parts: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = str(current) or type(current).__name__
        if not parts or parts[-1] != text:
            parts.append(text)
        current = current.__cause__ or current.__context__
    return ": ".join(parts)


class WorkerPool:
    """Runs up to ``max_workers`` encodes concurrently."""

    def __init__(
        self,
        max_workers: int,
        encode_fn: EncodeFn = encode_job,
        config: VeqConfig | None = None,
    ) -> None:
        """Initialize the pool.

        Args:
            max_workers: Concurrency limit; values below 1 become 1.
            encode_fn: Called as ``encode_fn(job, profile, hw_config=...,
                capabilities=..., callback=..., process_registry=...,
                config=...)``. Raising marks the job failed.
            config: Application config; loaded lazily when None.
        """
        self.messages: queue.Queue[WorkerMessage] = queue.Queue()
        self._max_workers = max(1, max_workers)
        self._active = 0
        self._lock = threading.Lock()
        self._encode_fn = encode_fn
        self._config = config
        self._processes = ProcessRegistry()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def set_max_workers(self, value: int) -> None:
        """Change the limit; running workers are never interrupted."""
        self._max_workers = max(1, value)
        logger.debug("Worker limit set to %d", self._max_workers)

    def active_count(self) -> int:
        with self._lock:
            return self._active

    def can_spawn(self) -> bool:
        return self.active_count() < self._max_workers

    @property
    def processes(self) -> ProcessRegistry:
        return self._processes

    def spawn_worker(
        self,
        worker_id: int,
        job: VideoJob,
        hw_config: HwEncodingConfig | None = None,
        profile: Profile | None = None,
        capabilities: CapabilityMatrix | None = None,
    ) -> threading.Thread:
        """Start encoding a copy of ``job`` on a new thread.

        The caller keeps its own job object; the worker mutates a deep
        copy and reports changes through ``messages``.

        Args:
            worker_id: Slot number reported in ``WorkerIdle`` and logs.
            job: Pending job to encode.
            hw_config: Hardware rate control, or None for the profile's.
            profile: Profile to use; resolved from ``job.profile`` if None.
            capabilities: Host capabilities for encoder selection.

        Returns:
            The started thread.

        Raises:
            PoolSaturatedError: If no slot is free.
        """
        with self._lock:
            if self._active >= self._max_workers:
                raise PoolSaturatedError(
                    f"All {self._max_workers} worker slot(s) are busy"
                )
            self._active += 1

        worker_job = copy.deepcopy(job)
        thread = threading.Thread(
            target=self._run,
            args=(worker_id, worker_job, hw_config, profile, capabilities),
            name=f"veq-worker-{worker_id}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            with self._lock:
                self._active -= 1
            raise
        return thread

    def _on_progress(self, job: VideoJob, _snapshot: ProgressSnapshot) -> None:
        self.messages.put(ProgressUpdate.from_job(job))

    def _run(
        self,
        worker_id: int,
        job: VideoJob,
        hw_config: HwEncodingConfig | None,
        profile: Profile | None,
        capabilities: CapabilityMatrix | None,
    ) -> None:
        try:
            with worker_context(worker_id, job.id, job.input_path):
                self.messages.put(JobStarted(job.id))
                try:
                    config = self._config if self._config is not None else get_config()
                    if profile is None:
                        profile = resolve_profile(job.profile, config.profiles_dir)
                    self._encode_fn(
                        job,
                        profile,
                        hw_config=hw_config,
                        capabilities=capabilities,
                        callback=self._on_progress,
                        process_registry=self._processes,
                        config=config,
                    )
                except Exception as e:
                    error = render_error(e)
                    logger.error("Job %s failed: %s", job.id, error)
                    logger.debug("Worker %s traceback", worker_id, exc_info=True)
                    self.messages.put(
                        JobFailed(job.id, error, partial_output=job.partial_output)
                    )
                else:
                    self.messages.put(JobCompleted(job.id))
        finally:
            with self._lock:
                self._active -= 1
            self.messages.put(WorkerIdle(worker_id))

    def drain(
        self, max_items: int = 64, timeout: float | None = None
    ) -> list[WorkerMessage]:
        """Receive up to ``max_items`` messages.

        Blocks up to ``timeout`` seconds for the first message (forever when
        None, not at all when 0), then takes whatever is already queued.
        """
        batch: list[WorkerMessage] = []
        if max_items <= 0:
            return batch
        try:
            if timeout == 0:
                batch.append(self.messages.get_nowait())
            else:
                batch.append(self.messages.get(timeout=timeout))
        except queue.Empty:
            return batch
        while len(batch) < max_items:
            try:
                batch.append(self.messages.get_nowait())
            except queue.Empty:
                break
        return batch

    def kill_all_running(self) -> int:
        """Terminate every running ffmpeg, killing those that ignore it.

        Returns:
            Number of processes signalled.
        """
        count = self._processes.terminate_all()
        if count:
            logger.info("Stopped %d running encode(s)", count)
        return count
