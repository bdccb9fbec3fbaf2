"""ffprobe-based input inspection.

Only the first video stream and the container duration are of interest:
they decide fps/scale filters, QSV surface format, HDR tonemapping and
progress percentages.
"""

from __future__ import annotations

import json
import logging
import subprocess  # nosec B404 - used only for TimeoutExpired
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from veq.core.subprocess_utils import run_command

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 60
HDR_TRANSFERS = frozenset({"smpte2084", "arib-std-b67"})


class MediaIntrospectionError(Exception):
    """Raised when ffprobe cannot describe a file."""


@dataclass(frozen=True)
class InputInfo:
    """Facts about the source video stream."""

    width: int
    height: int
    fps: float
    duration: float | None = None
    codec_name: str | None = None
    bit_depth: int | None = None
    is_hdr: bool = False


def parse_fraction(value: str) -> float | None:
    """Parse an ffprobe rate such as ``"30000/1001"``.

    Returns None for malformed input or a zero denominator.
    """
    numerator, sep, denominator = value.partition("/")
    if not sep:
        return None
    try:
        num = float(numerator)
        den = float(denominator)
    except ValueError:
        return None
    if den == 0:
        return None
    return num / den


def _bit_depth(stream: dict[str, Any]) -> int | None:
    raw = stream.get("bits_per_raw_sample")
    if raw is not None:
        try:
            return int(raw)
        except (TypeError, ValueError):
            pass
    pix_fmt = str(stream.get("pix_fmt") or "")
    if not pix_fmt:
        return None
    if "12" in pix_fmt:
        return 12
    if "10" in pix_fmt:
        return 10
    return 8


def _parse_duration(data: dict[str, Any]) -> float | None:
    value = (data.get("format") or {}).get("duration")
    if value is None:
        return None
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return None
    return duration if duration > 0 else None


def _run_ffprobe(path: Path, args: list[str], ffprobe: str) -> dict[str, Any]:
    try:
        stdout, stderr, rc = run_command(
            [ffprobe, "-v", "quiet", "-print_format", "json", *args, path],
            timeout=PROBE_TIMEOUT,
        )
    except subprocess.TimeoutExpired as e:
        raise MediaIntrospectionError(
            f"ffprobe timed out for {path} after {e.timeout}s"
        ) from e
    except OSError as e:
        raise MediaIntrospectionError(f"Failed to run ffprobe: {e}") from e

    if rc != 0:
        raise MediaIntrospectionError(
            f"ffprobe failed for {path}: {stderr.strip() or f'exit code {rc}'}"
        )
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise MediaIntrospectionError(f"Invalid ffprobe output for {path}: {e}") from e
    if not isinstance(data, dict):
        raise MediaIntrospectionError(f"Invalid ffprobe output for {path}")
    return data


def parse_input_info(data: dict[str, Any]) -> InputInfo:
    """Build InputInfo from ffprobe JSON.

    Raises:
        MediaIntrospectionError: If there is no usable video stream.
    """
    streams = data.get("streams") or []
    if not streams:
        raise MediaIntrospectionError("No video stream found")
    stream = streams[0]

    try:
        width = int(stream["width"])
        height = int(stream["height"])
    except (KeyError, TypeError, ValueError) as e:
        raise MediaIntrospectionError("Failed to get video dimensions") from e

    rate = stream.get("r_frame_rate") or stream.get("avg_frame_rate")
    fps = parse_fraction(rate) if rate else None
    if fps is None:
        raise MediaIntrospectionError(f"Failed to parse framerate: {rate!r}")

    return InputInfo(
        width=width,
        height=height,
        fps=fps,
        duration=_parse_duration(data),
        codec_name=stream.get("codec_name"),
        bit_depth=_bit_depth(stream),
        is_hdr=stream.get("color_transfer") in HDR_TRANSFERS,
    )


def probe_input_info(path: Path, ffprobe: str = "ffprobe") -> InputInfo:
    """Inspect the first video stream of ``path``.

    Raises:
        MediaIntrospectionError: If ffprobe fails or reports no video.
    """
    data = _run_ffprobe(
        path,
        ["-show_format", "-show_streams", "-select_streams", "v:0"],
        ffprobe,
    )
    return parse_input_info(data)


def probe_duration(path: Path, ffprobe: str = "ffprobe") -> float:
    """Container duration in seconds.

    Raises:
        MediaIntrospectionError: If ffprobe fails or the duration is absent.
    """
    data = _run_ffprobe(path, ["-show_format"], ffprobe)
    duration = _parse_duration(data)
    if duration is None:
        raise MediaIntrospectionError(f"No duration reported for {path}")
    return duration


def try_probe_duration(path: Path, ffprobe: str = "ffprobe") -> float | None:
    """``probe_duration`` that returns None instead of raising."""
    try:
        return probe_duration(path, ffprobe)
    except MediaIntrospectionError as e:
        logger.debug("Duration unknown for %s: %s", path, e)
        return None


def try_probe_input_info(path: Path, ffprobe: str = "ffprobe") -> InputInfo | None:
    """``probe_input_info`` that returns None instead of raising."""
    try:
        return probe_input_info(path, ffprobe)
    except MediaIntrospectionError as e:
        logger.debug("Input info unavailable for %s: %s", path, e)
        return None


def tool_version(tool: str) -> str | None:
    """First line of ``<tool> -version``, or None if the tool does not run."""
    try:
        stdout, _stderr, rc = run_command([tool, "-version"], timeout=10)
    except (subprocess.TimeoutExpired, OSError):
        return None
    if rc != 0:
        return None
    lines = stdout.splitlines()
    return lines[0].strip() if lines else None
