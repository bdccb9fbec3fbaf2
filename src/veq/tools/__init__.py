"""External tool helpers: ffmpeg progress parsing and hardware detection."""

from veq.tools.ffmpeg_progress import ProgressParser, ProgressSnapshot
from veq.tools.hardware import (
    DETECTION_TIMEOUT,
    CapabilityMatrix,
    VaapiConfig,
    VaapiDriver,
    clear_capability_cache,
    detect_capabilities,
    detect_render_device,
    detect_vaapi_config,
    qsv_driver_env,
    vmaf_filter_available,
)

__all__ = [
    "DETECTION_TIMEOUT",
    "CapabilityMatrix",
    "ProgressParser",
    "ProgressSnapshot",
    "VaapiConfig",
    "VaapiDriver",
    "clear_capability_cache",
    "detect_capabilities",
    "detect_render_device",
    "detect_vaapi_config",
    "qsv_driver_env",
    "vmaf_filter_available",
]
