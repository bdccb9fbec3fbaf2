"""Input discovery and encode job construction."""

from veq.scanner.orchestrator import (
    SKIP_OUTPUT_EXISTS,
    SKIP_SAME_AS_INPUT,
    VIDEO_EXTENSIONS,
    build_job_from_path,
    build_job_queue,
    is_video_file,
    iter_video_files,
    scan_streaming,
)

__all__ = [
    "SKIP_OUTPUT_EXISTS",
    "SKIP_SAME_AS_INPUT",
    "VIDEO_EXTENSIONS",
    "build_job_from_path",
    "build_job_queue",
    "is_video_file",
    "iter_video_files",
    "scan_streaming",
]
