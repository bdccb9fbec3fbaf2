"""Auto-VMAF quality calibration.

Before the real encode, a few short windows of the source are encoded at
the profile's quality and scored against the source with libvmaf. While
the average score is below the target, quality is raised (CRF or
global_quality lowered by ``vmaf_step``) and the windows are encoded again,
until the target is met, the quality floor is reached or
``vmaf_max_attempts`` runs out.

Window encodes use the regular command builder with a window, no scaling
and no audio, so they go through the same encoder pipeline as the real
encode.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess  # nosec B404 - used only for TimeoutExpired
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from veq.config.models import VeqConfig
from veq.core.file_utils import remove_file_quietly
from veq.core.subprocess_utils import run_command
from veq.domain.models import JobStatus, VideoJob
from veq.executor.transcode.command import build_commands, format_seconds
from veq.executor.transcode.types import BuildContext
from veq.introspector.ffprobe import MediaIntrospectionError, probe_duration
from veq.profiles.models import HwEncodingConfig, Profile
from veq.tools.ffmpeg_progress import ProgressSnapshot
from veq.tools.hardware import (
    CapabilityMatrix,
    VaapiConfig,
    vmaf_filter_available,
)

logger = logging.getLogger(__name__)

SOFTWARE_QUALITY_FLOOR = 10
HARDWARE_QUALITY_FLOOR = 5

# Window count scales linearly from 1 to 5 between these durations
MIN_SCALED_DURATION = 5 * 60.0
MAX_SCALED_DURATION = 90 * 60.0
MIN_WINDOWS = 1
MAX_WINDOWS = 5

# Seconds kept clear at the start and end of the source
EDGE_MARGIN = 5.0

DEFAULT_OUTPUT_HEIGHT = 1080
UHD_HEIGHT = 2160

TEMP_DIR_NAME = ".veq_tmp"
WINDOW_ENCODE_TIMEOUT = 1800
VMAF_TIMEOUT = 1800


class CalibrationError(Exception):
    """Raised when calibration cannot run or a window fails."""


@dataclass(frozen=True)
class CalibrationResult:
    """Outcome of a calibration run."""

    quality: int
    """CRF (software) or global_quality/CQ (hardware) to encode with."""

    measured_vmaf: float
    """Average VMAF of the windows at ``quality``."""

    attempts: int
    hit_floor: bool = False
    """The quality floor was reached without meeting the target."""


def is_vmaf_compatible(profile: Profile) -> bool:
    """True for quality-driven rate control.

    Hardware encodes need CQP (``hw_rc_mode == 1``); software encodes must
    not target a bitrate (a max bitrate cap is fine).
    """
    if profile.use_hardware_encoding:
        return profile.hw_rc_mode == 1
    return profile.video_target_bitrate == 0


def baseline_quality(profile: Profile) -> int:
    """The profile's own quality value, where calibration starts."""
    if not profile.use_hardware_encoding:
        return profile.crf
    if profile.vp9 is not None:
        return profile.vp9.hw_global_quality
    return profile.codec.hw_cq


def quality_floor(profile: Profile) -> int:
    if profile.use_hardware_encoding:
        return HARDWARE_QUALITY_FLOOR
    return SOFTWARE_QUALITY_FLOOR


def _window_count(duration: float, max_windows: int, possible_windows: int) -> int:
    if duration < MIN_SCALED_DURATION:
        ideal = MIN_WINDOWS
    elif duration >= MAX_SCALED_DURATION:
        ideal = MAX_WINDOWS
    else:
        ratio = (duration - MIN_SCALED_DURATION) / (
            MAX_SCALED_DURATION - MIN_SCALED_DURATION
        )
        ideal = round(MIN_WINDOWS + ratio * (MAX_WINDOWS - MIN_WINDOWS))
    return min(ideal, max_windows, possible_windows)


def select_windows(
    duration: float, window_duration: int, budget: int
) -> list[tuple[float, float]]:
    """Pick ``(start, duration)`` windows to score.

    The count grows with the source length (one below 5 minutes, five from
    90 minutes) and is capped by ``budget // window_duration`` and by how
    many windows fit. Windows sit at the start, middle and end, with any
    extras spread evenly in between, sorted by start time. A source shorter
    than one window is scored as a whole.

    Example:
        >>> select_windows(30.0, 10, 60)
        [(5.0, 10.0)]
    """
    window = float(window_duration)
    if window <= 0:
        return []
    if duration < window:
        return [(0.0, duration)]

    max_windows = int(budget // window)
    possible = int(duration // window)
    count = _window_count(duration, max_windows, possible)
    if count <= 0:
        return []

    start = EDGE_MARGIN
    if count == 1:
        return [(start, window)]
    if count == 2:
        return [(start, window), (max(duration - window - EDGE_MARGIN, 10.0), window)]

    mid = max(duration / 2 - window / 2, EDGE_MARGIN)
    end = max(duration - window - EDGE_MARGIN, mid + window)
    windows = [(start, window), (mid, window), (end, window)]

    extra = count - 3
    segment = (duration - 2 * EDGE_MARGIN - window) / (extra + 1)
    windows.extend((EDGE_MARGIN + segment * i, window) for i in range(1, extra + 1))
    return sorted(windows)


def select_vmaf_model(output_height: int) -> str:
    """libvmaf model for the output resolution (4K model from 2160p)."""
    if output_height >= UHD_HEIGHT:
        return "version=vmaf_4k_v0.6.1"
    return "version=vmaf_v0.6.1"


def escape_filter_path(path: Path) -> str:
    """Escape a path for use as a filtergraph option value."""
    text = str(path)
    for char in ("\\", ":", " ", "[", "]"):
        text = text.replace(char, "\\" + char)
    return text


def build_vmaf_command(
    source: Path,
    encoded: Path,
    window: tuple[float, float],
    *,
    encode_fps: int,
    output_height: int,
    n_subsample: int,
    log_path: Path,
    hw_device: str | None = None,
) -> list[str]:
    """Arguments (without the program) scoring ``encoded`` against a window.

    Both legs are normalised to the same fps, height and pixel format so the
    frames line up.

    Args:
        source: Original input.
        encoded: Encoded window.
        window: ``(start, duration)`` of the window in the source.
        encode_fps: Output fps cap of the profile, 0 for none.
        output_height: Output height, used for scaling and model choice.
        n_subsample: Score every Nth frame.
        log_path: Where libvmaf writes its JSON log.
        hw_device: VAAPI render node to decode on, None for software.
    """
    norm = []
    if encode_fps > 0:
        norm.append(f"fps=fps={encode_fps}")
    if output_height > 0:
        norm.append(f"scale=-2:{output_height}")
    norm.append("format=yuv420p")
    chain = ",".join(norm)

    filtergraph = (
        f"[0:v]{chain}[ref];[1:v]{chain}[dist];"
        f"[dist][ref]libvmaf=model={select_vmaf_model(output_height)}"
        f":log_fmt=json:log_path={escape_filter_path(log_path)}"
        f":n_subsample={n_subsample}"
    )

    args = ["-hide_banner", "-y"]
    if hw_device is not None:
        args.extend(["-init_hw_device", f"vaapi=va:{hw_device}", "-hwaccel", "vaapi"])
    start, duration = window
    args.extend(
        [
            "-ss",
            format_seconds(start),
            "-t",
            format_seconds(duration),
            "-i",
            str(source),
            "-i",
            str(encoded),
            "-lavfi",
            filtergraph,
            "-vsync",
            "0",
            "-f",
            "null",
            "-",
        ]
    )
    return args


def parse_vmaf_score(log_path: Path) -> float:
    """Pooled mean VMAF from a libvmaf JSON log.

    Raises:
        CalibrationError: If the log is missing or malformed.
    """
    try:
        data = json.loads(log_path.read_text(encoding="utf-8"))
        return float(data["pooled_metrics"]["vmaf"]["mean"])
    except OSError as e:
        raise CalibrationError(f"Failed to read VMAF log {log_path}: {e}") from e
    except (ValueError, KeyError, TypeError) as e:
        raise CalibrationError(f"Failed to parse VMAF log {log_path}: {e}") from e


def create_job_temp_dir(job: VideoJob) -> Path:
    """``<input dir>/.veq_tmp/<job id>``, created on demand.

    Kept beside the source so window files stay on the same filesystem.
    """
    path = job.input_path.parent / TEMP_DIR_NAME / job.id
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CalibrationError(f"Failed to create temp dir {path}: {e}") from e
    return path


def cleanup_job_temp_dir(path: Path) -> None:
    """Remove a job temp dir, and its parent if nothing else is left in it."""
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)
    try:
        path.parent.rmdir()
    except OSError:
        pass  # other jobs still use it, or it is already gone


def window_output_path(
    job: VideoJob, temp_dir: Path, start: float, quality: int
) -> Path:
    ext = job.output_path.suffix.lstrip(".") or "mkv"
    return temp_dir / f"win_{job.id}_{start:.1f}s_q{quality}.{ext}"


def encode_window(
    job: VideoJob,
    profile: Profile,
    window: tuple[float, float],
    quality: int,
    temp_dir: Path,
    *,
    hw_config: HwEncodingConfig | None = None,
    capabilities: CapabilityMatrix | None = None,
    context: BuildContext | None = None,
    ffmpeg: str = "ffmpeg",
) -> Path:
    """Encode one window at ``quality`` and return the encoded file.

    Raises:
        CalibrationError: If ffmpeg fails or writes no output.
    """
    test_profile = profile.with_quality(quality)
    # VMAF needs source resolution on both legs
    test_profile.scale_width = 0
    test_profile.scale_height = 0
    test_hw = replace(hw_config, global_quality=quality) if hw_config else None

    output = window_output_path(job, temp_dir, window[0], quality)
    window_job = replace(job, output_path=output, overwrite=True)
    window_context = replace(
        context or BuildContext(), window=window, disable_audio=True
    )

    commands = build_commands(
        window_job,
        test_profile,
        capabilities=capabilities,
        context=window_context,
        hw_config=test_hw,
    )
    for command in commands:
        logger.debug("Window encode: %s %s", ffmpeg, " ".join(command.args))
        env = {**os.environ, **command.env} if command.env else None
        try:
            _stdout, stderr, rc = run_command(
                [ffmpeg, *command.args], timeout=WINDOW_ENCODE_TIMEOUT, env=env
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            raise CalibrationError(f"Window encode failed: {e}") from e
        if rc != 0:
            tail = "\n".join(stderr.strip().splitlines()[-10:])
            raise CalibrationError(f"Window encode failed: {tail}")

    if not output.exists():
        raise CalibrationError("Window encode did not produce output file")
    return output


def score_window(
    source: Path,
    encoded: Path,
    window: tuple[float, float],
    profile: Profile,
    temp_dir: Path,
    *,
    output_height: int,
    vaapi: VaapiConfig | None = None,
    ffmpeg: str = "ffmpeg",
) -> float:
    """VMAF of one encoded window.

    With a VAAPI config, decoding is tried on the GPU first and retried in
    software if that fails.

    Raises:
        CalibrationError: If every attempt fails.
    """
    log_path = temp_dir / f"vmaf_{uuid.uuid4()}.json"
    attempts: list[VaapiConfig | None] = [vaapi, None] if vaapi is not None else [None]
    error = ""
    for attempt in attempts:
        args = build_vmaf_command(
            source,
            encoded,
            window,
            encode_fps=profile.fps,
            output_height=output_height,
            n_subsample=profile.vmaf_n_subsample,
            log_path=log_path,
            hw_device=attempt.render_device if attempt is not None else None,
        )
        env = {**os.environ, **attempt.env()} if attempt is not None else None
        try:
            _stdout, stderr, rc = run_command(
                [ffmpeg, *args], timeout=VMAF_TIMEOUT, env=env
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            raise CalibrationError(f"VMAF evaluation failed: {e}") from e
        if rc == 0:
            try:
                return parse_vmaf_score(log_path)
            finally:
                remove_file_quietly(log_path, "VMAF log")
        error = stderr.strip()
        if attempt is not None:
            logger.debug("Hardware-decoded VMAF failed, retrying in software")
    raise CalibrationError(f"VMAF evaluation failed: {error}")


def _notify(
    callback: Callable[[VideoJob, ProgressSnapshot], None] | None, job: VideoJob
) -> None:
    if callback is None:
        return
    try:
        callback(job, ProgressSnapshot())
    except Exception as e:
        logger.warning("Progress callback error: %s", e)


def calibrate_quality(
    job: VideoJob,
    profile: Profile,
    *,
    hw_config: HwEncodingConfig | None = None,
    capabilities: CapabilityMatrix | None = None,
    context: BuildContext | None = None,
    callback: Callable[[VideoJob, ProgressSnapshot], None] | None = None,
    config: VeqConfig | None = None,
) -> CalibrationResult:
    """Find the lowest-effort quality that meets ``profile.vmaf_target``.

    The job is Calibrating throughout. After every window its partial
    scores, running average (``vmaf_result``), step counters and progress
    are updated and the callback is invoked.

    Args:
        job: Job being calibrated; mutated for progress reporting.
        profile: Profile with the Auto-VMAF settings.
        hw_config: Hardware rate control for hardware encodes.
        capabilities: Host capabilities for encoder selection.
        context: Build context of the real encode.
        callback: Receives the job after each status or progress change.
        config: Tool paths; defaults when None.

    Returns:
        The chosen quality and its measured VMAF.

    Raises:
        CalibrationError: If calibration cannot run or a window fails.
    """
    config = config if config is not None else VeqConfig()
    ffmpeg = config.tools.ffmpeg_cmd

    if not vmaf_filter_available(ffmpeg):
        raise CalibrationError("VMAF filter not available in ffmpeg")
    if not is_vmaf_compatible(profile):
        raise CalibrationError(
            "Profile rate control mode not compatible with Auto-VMAF (use CQ/CQP)"
        )

    duration = job.duration_s
    if duration is None:
        try:
            duration = probe_duration(job.input_path, config.tools.ffprobe_cmd)
        except MediaIntrospectionError as e:
            raise CalibrationError(f"Failed to probe duration: {e}") from e
    if duration < 1.0:
        raise CalibrationError("Video too short for Auto-VMAF calibration (< 1s)")

    windows = select_windows(
        duration, profile.vmaf_window_duration_sec, profile.vmaf_analysis_budget_sec
    )
    if not windows:
        raise CalibrationError("No valid windows selected for calibration")

    quality = baseline_quality(profile)
    floor = quality_floor(profile)
    step = profile.vmaf_step
    max_attempts = max(1, profile.vmaf_max_attempts)
    output_height = (
        profile.scale_height if profile.scale_height > 0 else DEFAULT_OUTPUT_HEIGHT
    )
    vaapi = None
    if profile.use_hardware_encoding and context is not None:
        vaapi = context.vaapi

    logger.info(
        "Auto-VMAF: %d window(s), baseline quality %d, target %.1f, floor %d",
        len(windows),
        quality,
        profile.vmaf_target,
        floor,
    )

    total = max_attempts * len(windows)
    if job.status is not JobStatus.CALIBRATING:
        job.mark_calibrating(total)
    job.calibrating_total_steps = total
    job.calibrating_completed_steps = 0
    job.progress_pct = 0.0
    _notify(callback, job)

    temp_dir = create_job_temp_dir(job)
    hit_floor = False
    avg_vmaf = 0.0
    attempt = 0
    try:
        for attempt in range(1, max_attempts + 1):
            logger.debug(
                "Auto-VMAF attempt %d/%d at quality %d", attempt, max_attempts, quality
            )
            # vmaf_result keeps the previous attempt's value until a window lands
            job.vmaf_partial_scores = []
            scores = []
            for window in windows:
                encoded = encode_window(
                    job,
                    profile,
                    window,
                    quality,
                    temp_dir,
                    hw_config=hw_config,
                    capabilities=capabilities,
                    context=context,
                    ffmpeg=ffmpeg,
                )
                try:
                    score = score_window(
                        job.input_path,
                        encoded,
                        window,
                        profile,
                        temp_dir,
                        output_height=output_height,
                        vaapi=vaapi,
                        ffmpeg=ffmpeg,
                    )
                finally:
                    remove_file_quietly(encoded, "VMAF window")
                logger.debug("Window at %.1fs: VMAF %.2f", window[0], score)

                scores.append(score)
                job.vmaf_partial_scores.append(score)
                job.vmaf_result = sum(job.vmaf_partial_scores) / len(
                    job.vmaf_partial_scores
                )
                job.calibrating_completed_steps = min(
                    job.calibrating_completed_steps + 1, total
                )
                job.progress_pct = min(
                    100.0, job.calibrating_completed_steps / total * 100
                )
                _notify(callback, job)

            avg_vmaf = sum(scores) / len(scores)
            if avg_vmaf >= profile.vmaf_target:
                break
            if quality <= floor:
                hit_floor = True
                break
            if attempt == max_attempts:
                logger.warning(
                    "Auto-VMAF max attempts reached; best VMAF %.2f at quality %d",
                    avg_vmaf,
                    quality,
                )
                break
            quality = max(quality - step, floor)
    finally:
        cleanup_job_temp_dir(temp_dir)

    job.progress_pct = 100.0
    job.calibrating_total_steps = None
    job.calibrating_completed_steps = 0
    return CalibrationResult(quality, avg_vmaf, attempt, hit_floor)
