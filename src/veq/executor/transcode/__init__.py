"""Transcode executor package for encoding via FFmpeg.

Module organization:
- types.py: Data classes (EncodeCommand, BuildContext, TwoPassContext)
- encoders.py: Encoder backends and hardware-aware selection
- filters.py: Video filter chain fragments
- audio.py: Audio argument building for FFmpeg
- command.py: FFmpeg command construction per backend
- executor.py: encode_job and the ffmpeg run loop

Usage:
    from veq.executor.transcode import build_commands, encode_job
"""

from .audio import build_audio_args, container_for_output
from .command import (
    build_command,
    build_commands,
    format_commands,
    null_device,
    two_pass_log_prefix,
)
from .encoders import Encoder, select_encoder
from .executor import (
    EncodeError,
    ProcessRegistry,
    detect_build_context,
    encode_job,
    was_user_cancelled,
)
from .types import BuildContext, EncodeCommand, TwoPassContext

__all__ = [
    # Types
    "BuildContext",
    "EncodeCommand",
    "TwoPassContext",
    # Encoder selection
    "Encoder",
    "select_encoder",
    # Command building
    "build_audio_args",
    "build_command",
    "build_commands",
    "container_for_output",
    "format_commands",
    "null_device",
    "two_pass_log_prefix",
    # Executor
    "EncodeError",
    "ProcessRegistry",
    "detect_build_context",
    "encode_job",
    "was_user_cancelled",
]
