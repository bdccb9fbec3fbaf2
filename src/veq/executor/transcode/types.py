"""Transcode data types.

This module defines the structures shared by the command builder and the
executor: the built command, the facts a build depends on, and the two-pass
context.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from veq.introspector.ffprobe import InputInfo
from veq.tools.hardware import VaapiConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodeCommand:
    """One ffmpeg invocation.

    ``args`` excludes the program name so the executor can prepend the
    configured ffmpeg path.
    """

    args: list[str]
    env: dict[str, str] = field(default_factory=dict)
    encoder: str = ""
    pass_number: int | None = None
    """1 or 2 for two-pass encodes, None for single-pass."""


@dataclass(frozen=True)
class BuildContext:
    """Probed and detected facts a command build depends on.

    Passing these in keeps building pure: the same profile, job and context
    always produce the same arguments.
    """

    input_info: InputInfo | None = None
    """Source stream facts; filters needing them are skipped when None."""

    vaapi: VaapiConfig | None = None
    """Detected VAAPI driver and render device."""

    auto_bit_depth: bool = True
    """Pick the QSV surface format from the source bit depth."""

    window: tuple[float, float] | None = None
    """(start, duration) in seconds to encode only part of the input."""

    disable_audio: bool = False
    """Drop audio and subtitles instead of mapping audio tracks."""

    render_device: str | None = None
    """DRM render node for QSV device init."""

    qsv_env: dict[str, str] = field(default_factory=dict)
    """libva variables forcing the iHD driver for QSV."""


@dataclass
class TwoPassContext:
    """Pass-log location shared by the two passes of a software encode.

    Pass 1 analyses the video and writes the log, pass 2 reads it for
    accurate bitrate targeting.
    """

    passlogfile: Path
    """Path prefix for pass log files (ffmpeg adds ``-0.log``)."""

    current_pass: int = 1

    def cleanup(self) -> None:
        """Remove the per-job pass-log directory."""
        log_dir = self.passlogfile.parent
        if not log_dir.exists():
            return
        try:
            shutil.rmtree(log_dir)
            logger.debug("Cleaned up pass log directory: %s", log_dir)
        except OSError as e:
            logger.warning("Could not clean up pass log directory %s: %s", log_dir, e)
