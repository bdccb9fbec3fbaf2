"""Audio argument building for ffmpeg encodes.

Output audio is laid out as a primary track plus optional AC3 5.1 and stereo
compatibility tracks, all taken from the first source audio stream.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from veq.profiles.models import Profile

PASSTHROUGH = "passthrough"
MIN_PRIMARY_BITRATE = 32  # kbit/s

# Containers that can hold whatever the source audio is
_PASSTHROUGH_CONTAINERS = frozenset({"mkv", "avi"})


def container_for_output(output_path: Path, profile: Profile) -> str:
    """Container of the output file, falling back to the profile's."""
    suffix = output_path.suffix.lstrip(".")
    return suffix.lower() if suffix else profile.container


def resolve_audio_codec(container: str, requested: str) -> str:
    """Map a requested audio codec to one the container accepts.

    WebM holds only Opus or Vorbis and MP4 gets AAC; elsewhere the request
    is kept, with ``vorbis`` spelled as the ``libvorbis`` encoder.
    """
    if container == "webm":
        return "libopus" if requested == "libopus" else "libvorbis"
    if container == "mp4":
        return "aac"
    if requested == "vorbis":
        return "libvorbis"
    return requested


def audio_track_count(profile: Profile) -> int:
    return 1 + int(profile.audio_add_ac3) + int(profile.audio_add_stereo)


def build_audio_args(profile: Profile, container: str) -> list[str]:
    """Build ``-map`` and per-track codec arguments.

    Args:
        profile: Profile with the audio settings.
        container: Output container extension.

    Returns:
        List of ffmpeg arguments, starting with the stream maps.
    """
    args = ["-map", "0:v:0?"]
    for _ in range(audio_track_count(profile)):
        args.extend(["-map", "0:a:0?"])

    idx = 0
    primary = profile.audio_primary_codec
    if primary == PASSTHROUGH and container in _PASSTHROUGH_CONTAINERS:
        args.extend([f"-c:a:{idx}", "copy"])
    else:
        # Passthrough the container cannot hold falls back to Opus
        requested = "libopus" if primary == PASSTHROUGH else primary
        codec = resolve_audio_codec(container, requested)
        bitrate = max(profile.audio_primary_bitrate, MIN_PRIMARY_BITRATE)
        args.extend([f"-c:a:{idx}", codec, f"-b:a:{idx}", f"{bitrate}k"])
        if codec == "libopus":
            args.extend([f"-vbr:a:{idx}", "on"])
        if profile.audio_primary_downmix:
            args.extend([f"-ac:a:{idx}", "2"])
    idx += 1

    if profile.audio_add_ac3:
        args.extend(
            [
                f"-c:a:{idx}",
                "ac3",
                f"-b:a:{idx}",
                f"{profile.audio_ac3_bitrate}k",
                f"-ac:a:{idx}",
                "6",
            ]
        )
        idx += 1

    if profile.audio_add_stereo:
        codec = resolve_audio_codec(container, profile.audio_stereo_codec)
        args.extend(
            [
                f"-c:a:{idx}",
                codec,
                f"-b:a:{idx}",
                f"{profile.audio_stereo_bitrate}k",
                f"-ac:a:{idx}",
                "2",
            ]
        )
        if codec == "libopus":
            args.extend([f"-vbr:a:{idx}", "on"])

    return args


def split_additional_args(additional_args: str) -> list[str]:
    """Shell-split user arguments; unbalanced quotes fall back to whitespace."""
    if not additional_args.strip():
        return []
    try:
        return shlex.split(additional_args)
    except ValueError:
        return additional_args.split()
