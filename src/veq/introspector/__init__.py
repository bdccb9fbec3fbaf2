"""Media inspection via ffprobe."""

from veq.introspector.ffprobe import (
    InputInfo,
    MediaIntrospectionError,
    parse_fraction,
    probe_duration,
    probe_input_info,
    try_probe_duration,
    try_probe_input_info,
)

__all__ = [
    "InputInfo",
    "MediaIntrospectionError",
    "parse_fraction",
    "probe_duration",
    "probe_input_info",
    "try_probe_duration",
    "try_probe_input_info",
]
