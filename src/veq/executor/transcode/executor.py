"""Encode execution.

``encode_job`` drives one job from Running to Done or Failed: it probes the
source, optionally calibrates quality with Auto-VMAF, builds the ffmpeg
command(s) and runs them while feeding progress back through a callback.

ffmpeg writes ``-progress`` blocks to stdout and diagnostics to stderr. Both
pipes are read by daemon threads into one queue so the run loop can watch
for stalls without blocking on either pipe.
"""

from __future__ import annotations

import logging
import os
import platform
import queue
import subprocess  # nosec B404 - subprocess is required for FFmpeg invocation
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import IO

from veq.calibration import vmaf
from veq.config.loader import get_config
from veq.config.models import VeqConfig
from veq.core.file_utils import remove_file_quietly, same_file
from veq.domain.models import VideoJob
from veq.introspector.ffprobe import try_probe_duration, try_probe_input_info
from veq.profiles.models import HwEncodingConfig, Profile
from veq.tools.ffmpeg_progress import ProgressParser, ProgressSnapshot
from veq.tools.hardware import (
    CapabilityMatrix,
    detect_render_device,
    detect_vaapi_config,
    qsv_driver_env,
)

from .command import (
    build_command,
    build_commands,
    format_commands,
    two_pass_log_prefix,
)
from .encoders import Encoder
from .types import BuildContext, EncodeCommand, TwoPassContext

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[VideoJob, ProgressSnapshot], None]

# Signals that mean the user stopped ffmpeg (SIGINT, SIGQUIT, SIGTERM)
USER_CANCEL_SIGNALS = (2, 3, 15)
ERROR_TAIL_LINES = 10
STDERR_KEEP_LINES = 200
READER_JOIN_TIMEOUT = 5.0
TERMINATE_GRACE_SECONDS = 2.0


class EncodeError(Exception):
    """Raised when an encode finishes without a usable output file."""


def was_user_cancelled(returncode: int | None, stderr: str) -> bool:
    """True if ffmpeg stopped because of SIGINT/SIGQUIT/SIGTERM.

    ffmpeg usually catches these and exits with "Exiting normally, received
    signal N", so the stderr text is checked as well as the exit status.
    """
    if platform.system() == "Windows":
        return "received signal" in stderr
    if returncode is not None and returncode < 0 and -returncode in USER_CANCEL_SIGNALS:
        return True
    return any(f"received signal {sig}" in stderr for sig in USER_CANCEL_SIGNALS)


class ProcessRegistry:
    """Running ffmpeg processes, so a shutdown can stop them all."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processes: dict[int, subprocess.Popen[str]] = {}

    def register(self, process: subprocess.Popen[str]) -> None:
        with self._lock:
            self._processes[process.pid] = process

    def unregister(self, process: subprocess.Popen[str]) -> None:
        with self._lock:
            self._processes.pop(process.pid, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def terminate_all(self, grace: float = TERMINATE_GRACE_SECONDS) -> int:
        """Terminate every process, killing those still alive after ``grace``.

        Returns:
            Number of processes signalled.
        """
        with self._lock:
            processes = list(self._processes.values())

        for process in processes:
            if process.poll() is None:
                try:
                    process.terminate()
                except OSError as e:
                    logger.debug("terminate(%d) failed: %s", process.pid, e)

        deadline = time.monotonic() + grace
        for process in processes:
            remaining = max(0.0, deadline - time.monotonic())
            try:
                process.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                logger.warning("ffmpeg %d ignored SIGTERM, killing", process.pid)
                process.kill()
                process.wait()
        return len(processes)


@dataclass
class RunResult:
    """Outcome of one ffmpeg invocation."""

    returncode: int
    parser: ProgressParser
    stderr_lines: list[str] = field(default_factory=list)
    stalled: bool = False

    @property
    def stderr(self) -> str:
        return "\n".join(self.stderr_lines)

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and self.parser.is_complete

    def tail(self, lines: int = ERROR_TAIL_LINES) -> str:
        return "\n".join(self.stderr_lines[-lines:])


def _notify(
    callback: ProgressCallback | None, job: VideoJob, parser: ProgressParser
) -> None:
    if callback is None:
        return
    try:
        callback(job, parser.snapshot())
    except Exception as e:
        logger.warning("Progress callback error: %s", e)


def _apply_sample(
    job: VideoJob, parser: ProgressParser, offset: float, scale: float
) -> None:
    pct = parser.progress_pct(job.duration_s)
    if job.duration_s:
        pct = offset + pct * scale
    job.update_progress(pct, parser.out_time_s)
    job.fps = parser.fps
    job.speed = parser.speed
    job.bitrate_kbps = parser.bitrate_kbps
    job.size_bytes = parser.total_size


def _pump(stream: IO[str], source: str, lines: queue.Queue) -> None:
    try:
        for line in stream:
            lines.put((source, line))
    except (ValueError, OSError) as e:
        # Pipe closed under us after a kill
        logger.debug("%s reader stopped: %s", source, e)
    finally:
        lines.put((source, None))


def run_ffmpeg(
    job: VideoJob,
    command: EncodeCommand,
    *,
    ffmpeg: str = "ffmpeg",
    offset: float = 0.0,
    scale: float = 1.0,
    callback: ProgressCallback | None = None,
    process_registry: ProcessRegistry | None = None,
    stall_timeout: float = 0.0,
) -> RunResult:
    """Run one ffmpeg invocation, applying progress to ``job`` as it arrives.

    Args:
        job: Job whose progress fields are updated.
        command: Arguments (without the program) and extra environment.
        ffmpeg: ffmpeg executable.
        offset: Percentage added to this run's progress.
        scale: Factor applied to this run's progress before the offset.
        callback: Called after every progress line that changed a value.
        process_registry: Registry to track the child in while it runs.
        stall_timeout: Kill ffmpeg after this many seconds without a
            progress line; 0 disables.

    Returns:
        Exit code, final parser state and the stderr tail.

    Raises:
        OSError: If ffmpeg cannot be started.
    """
    env = {**os.environ, **command.env} if command.env else None
    process = subprocess.Popen(  # nosec B603 - args are built internally
        [ffmpeg, *command.args],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        env=env,
    )
    if process_registry is not None:
        process_registry.register(process)

    parser = ProgressParser()
    stderr_lines: deque[str] = deque(maxlen=STDERR_KEEP_LINES)
    lines: queue.Queue[tuple[str, str | None]] = queue.Queue()
    readers = [
        threading.Thread(target=_pump, args=(stream, name, lines), daemon=True)
        for stream, name in ((process.stdout, "stdout"), (process.stderr, "stderr"))
    ]
    for reader in readers:
        reader.start()

    stalled = False
    open_streams = len(readers)
    last_progress = time.monotonic()
    try:
        while open_streams:
            if stall_timeout and time.monotonic() - last_progress >= stall_timeout:
                stalled = True
                logger.warning(
                    "No progress from ffmpeg for %ss, killing it", stall_timeout
                )
                process.kill()
                break
            try:
                source, line = lines.get(timeout=1.0)
            except queue.Empty:
                continue

            if line is None:
                open_streams -= 1
            elif source == "stderr":
                stderr_lines.append(line.rstrip("\r\n"))
            elif parser.parse_line(line):
                last_progress = time.monotonic()
                _apply_sample(job, parser, offset, scale)
                _notify(callback, job, parser)
    except BaseException:
        process.kill()
        raise
    finally:
        returncode = process.wait()
        for reader in readers:
            reader.join(timeout=READER_JOIN_TIMEOUT)
        if process_registry is not None:
            process_registry.unregister(process)

    # Drain whatever the readers queued after the loop stopped
    while True:
        try:
            source, line = lines.get_nowait()
        except queue.Empty:
            break
        if line is not None and source == "stderr":
            stderr_lines.append(line.rstrip("\r\n"))

    return RunResult(returncode, parser, list(stderr_lines), stalled)


def _run_commands(
    job: VideoJob,
    commands: list[EncodeCommand],
    *,
    ffmpeg: str,
    callback: ProgressCallback | None,
    process_registry: ProcessRegistry | None,
    stall_timeout: float,
) -> tuple[RunResult, int | None]:
    """Run commands in order, stopping at the first failure.

    Returns:
        The last run's result and the 1-based number of the failed pass
        (None when every run exited 0 or for single-pass encodes).
    """
    two_pass = len(commands) == 2
    result: RunResult | None = None
    for index, command in enumerate(commands):
        # Pass 1 shows 0..50 and pass 2 shows 50..100
        offset, scale = (index * 50.0, 0.5) if two_pass else (0.0, 1.0)
        if two_pass:
            logger.info("Starting pass %d of 2", index + 1)
        start = time.monotonic()
        result = run_ffmpeg(
            job,
            command,
            ffmpeg=ffmpeg,
            offset=offset,
            scale=scale,
            callback=callback,
            process_registry=process_registry,
            stall_timeout=stall_timeout,
        )
        logger.debug(
            "ffmpeg exited with %d after %.1fs",
            result.returncode,
            time.monotonic() - start,
        )
        if result.returncode != 0:
            return result, index + 1 if two_pass else None
    assert result is not None
    return result, None


def detect_build_context(
    input_path: Path,
    *,
    config: VeqConfig | None = None,
) -> BuildContext:
    """Probe the source and detect devices for a command build.

    Everything is best effort: a failed probe leaves the field empty and the
    builder skips whatever depended on it.
    """
    config = config if config is not None else VeqConfig()
    return BuildContext(
        input_info=try_probe_input_info(input_path, config.tools.ffprobe_cmd),
        vaapi=detect_vaapi_config(),
        auto_bit_depth=config.defaults.auto_bit_depth,
        render_device=detect_render_device(),
        qsv_env=qsv_driver_env(),
    )


def _failure_message(
    result: RunResult,
    failed_pass: int | None,
    qsv_result: RunResult | None,
    stall_timeout: float,
) -> str:
    if result.stalled:
        return (
            f"Encoding stalled: no progress for {stall_timeout:g}s\n\n"
            f"FFmpeg error:\n{result.tail()}"
        )
    prefix = f" (pass {failed_pass})" if failed_pass else ""
    if qsv_result is not None:
        return (
            f"Encoding failed{prefix} with status: {result.returncode}\n\n"
            f"QSV error (first attempt):\n{qsv_result.tail()}\n\n"
            f"FFmpeg error (last attempt):\n{result.tail()}"
        )
    return (
        f"Encoding failed{prefix} with status: {result.returncode}\n\n"
        f"FFmpeg error:\n{result.tail()}"
    )


def _calibrate(
    job: VideoJob,
    profile: Profile,
    hw_config: HwEncodingConfig | None,
    *,
    capabilities: CapabilityMatrix | None,
    context: BuildContext,
    callback: ProgressCallback | None,
    config: VeqConfig,
) -> tuple[Profile, HwEncodingConfig | None]:
    """Run Auto-VMAF and return the profile and hw config to encode with.

    Calibration failures are logged and the baseline quality is used.
    """
    job.vmaf_target = profile.vmaf_target
    job.mark_calibrating()
    _notify(callback, job, ProgressParser())

    effective, effective_hw = profile, hw_config
    try:
        result = vmaf.calibrate_quality(
            job,
            profile,
            hw_config=hw_config,
            capabilities=capabilities,
            context=context,
            callback=callback,
            config=config,
        )
    except vmaf.CalibrationError as e:
        logger.warning("Auto-VMAF calibration failed, using baseline quality: %s", e)
        job.vmaf_result = None
        job.calibrated_quality = None
    else:
        logger.info(
            "Auto-VMAF calibrated quality %d (VMAF %.2f)",
            result.quality,
            result.measured_vmaf,
        )
        if result.hit_floor:
            logger.warning(
                "VMAF target %.1f not reachable, using the quality floor",
                profile.vmaf_target,
            )
        job.vmaf_result = result.measured_vmaf
        job.calibrated_quality = result.quality
        effective = profile.with_quality(result.quality)
        if hw_config is not None:
            effective_hw = replace(hw_config, global_quality=result.quality)

    job.mark_running(fresh=False)
    job.calibrating_total_steps = None
    job.calibrating_completed_steps = 0
    _notify(callback, job, ProgressParser())
    return effective, effective_hw


def encode_job(
    job: VideoJob,
    profile: Profile,
    *,
    hw_config: HwEncodingConfig | None = None,
    capabilities: CapabilityMatrix | None = None,
    callback: ProgressCallback | None = None,
    process_registry: ProcessRegistry | None = None,
    config: VeqConfig | None = None,
    context: BuildContext | None = None,
) -> None:
    """Encode one job in place.

    On return the job is Done. On failure it is Failed with ``last_error``
    set and EncodeError is raised. A partial output is removed only when
    this attempt was the one writing it: a file that existed before the run
    (without ``overwrite``) is never touched. When the user cancelled ffmpeg
    the partial output is kept and ``partial_output`` is set, so a resumed
    queue can clean it up.

    Args:
        job: Pending job; mutated throughout.
        profile: Profile to encode with.
        hw_config: Hardware rate control. Passing one requests hardware.
        capabilities: Host capabilities for encoder selection.
        callback: Receives the job and a progress snapshot on every change.
        process_registry: Registry the running ffmpeg is tracked in.
        config: Application config; loaded when None.
        context: Pre-probed build context; detected when None.

    Raises:
        EncodeError: If the encode did not produce a complete output.
        InvalidTransitionError: If the job is not Pending.
    """
    config = config if config is not None else get_config()
    ffmpeg = config.tools.ffmpeg_cmd
    stall_timeout = config.jobs.stall_timeout_seconds

    job.mark_running()
    try:
        job.output_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        message = f"Failed to create output directory: {e}"
        job.mark_failed(message)
        raise EncodeError(message) from e
    if same_file(job.input_path, job.output_path):
        message = f"Output path is the input file: {job.output_path}"
        job.mark_failed(message)
        raise EncodeError(message)
    # Existing outputs are only ours to delete when overwriting
    owns_output = job.overwrite or not job.output_path.exists()

    duration = try_probe_duration(job.input_path, config.tools.ffprobe_cmd)
    if duration is not None:
        job.duration_s = duration
    if context is None:
        context = detect_build_context(job.input_path, config=config)

    logger.info("Encoding %s -> %s", job.input_path, job.output_path)

    effective, effective_hw = profile, hw_config
    if profile.vmaf_enabled:
        effective, effective_hw = _calibrate(
            job,
            profile,
            hw_config,
            capabilities=capabilities,
            context=context,
            callback=callback,
            config=config,
        )

    commands = build_commands(
        job,
        effective,
        capabilities=capabilities,
        context=context,
        hw_config=effective_hw,
    )
    logger.debug("ffmpeg command:\n%s", format_commands(commands, ffmpeg))

    two_pass: TwoPassContext | None = None
    if len(commands) == 2:
        two_pass = TwoPassContext(passlogfile=two_pass_log_prefix(job))
        two_pass.passlogfile.parent.mkdir(parents=True, exist_ok=True)

    try:
        try:
            result, failed_pass = _run_commands(
                job,
                commands,
                ffmpeg=ffmpeg,
                callback=callback,
                process_registry=process_registry,
                stall_timeout=stall_timeout,
            )
        except OSError as e:
            message = f"Failed to start ffmpeg: {e}"
            job.mark_failed(message)
            raise EncodeError(message) from e

        qsv_result: RunResult | None = None
        encoder = Encoder.parse(commands[0].encoder)
        if (
            encoder is not None
            and encoder.is_qsv
            and result.returncode != 0
            and result.parser.out_time_us == 0
            and not result.stalled
            and not was_user_cancelled(result.returncode, result.stderr)
        ):
            qsv_result = result
            if config.defaults.disable_vaapi_fallback:
                logger.info("QSV encode failed; VAAPI fallback disabled by config")
            else:
                result, failed_pass = _fallback_to_vaapi(
                    job,
                    effective,
                    encoder,
                    qsv_result,
                    owns_output=owns_output,
                    hw_config=effective_hw,
                    context=context,
                    ffmpeg=ffmpeg,
                    callback=callback,
                    process_registry=process_registry,
                    stall_timeout=stall_timeout,
                )
    finally:
        if two_pass is not None:
            two_pass.cleanup()

    parser = result.parser
    job.out_time_s = max(job.out_time_s, parser.out_time_s)
    job.fps = parser.fps
    job.speed = parser.speed
    job.bitrate_kbps = parser.bitrate_kbps
    job.size_bytes = parser.total_size

    if result.succeeded and job.output_path.exists():
        job.mark_done()
        logger.info("Completed %s", job.output_path)
        _notify(callback, job, parser)
        return

    if result.succeeded:
        message = "Output file not created"
    else:
        message = _failure_message(result, failed_pass, qsv_result, stall_timeout)
        if not owns_output:
            logger.info("Leaving pre-existing output in place: %s", job.output_path)
        elif was_user_cancelled(result.returncode, result.stderr):
            job.partial_output = job.output_path.exists()
            logger.info(
                "Keeping partial output of cancelled encode: %s", job.output_path
            )
        else:
            remove_file_quietly(job.output_path, "failed encode")

    logger.error("Encoding failed for %s: %s", job.input_path, message)
    logger.debug("ffmpeg stderr:\n%s", result.stderr)
    job.mark_failed(message)
    _notify(callback, job, parser)
    raise EncodeError(message)


def _fallback_to_vaapi(
    job: VideoJob,
    profile: Profile,
    encoder: Encoder,
    qsv_result: RunResult,
    *,
    owns_output: bool,
    hw_config: HwEncodingConfig | None,
    context: BuildContext,
    ffmpeg: str,
    callback: ProgressCallback | None,
    process_registry: ProcessRegistry | None,
    stall_timeout: float,
) -> tuple[RunResult, int | None]:
    """Retry a QSV encode that failed before producing frames on VAAPI."""
    logger.warning(
        "QSV (%s) initialization failed; retrying with VAAPI. QSV stderr:\n%s",
        encoder.value,
        qsv_result.tail(20),
    )
    if owns_output:
        remove_file_quietly(job.output_path, "failed QSV attempt")
    job.progress_pct = 0.0
    job.out_time_s = 0.0
    _notify(callback, job, ProgressParser())

    fallback = Encoder.VP9_VAAPI if encoder is Encoder.VP9_QSV else Encoder.AV1_VAAPI
    command = build_command(
        job, profile, fallback, context=context, hw_config=hw_config
    )
    logger.debug("Fallback command:\n%s", format_commands([command], ffmpeg))
    return _run_commands(
        job,
        [command],
        ffmpeg=ffmpeg,
        callback=callback,
        process_registry=process_registry,
        stall_timeout=stall_timeout,
    )
