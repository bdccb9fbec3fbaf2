"""Video discovery and job construction.

Discovery walks the tree with ``os.scandir`` and never follows symlinks, so
a link to ``/`` or ``/proc`` cannot send the scan across the filesystem.
Hidden entries are skipped, which also keeps calibration scratch files in
``.veq_tmp`` out of the queue.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path

from veq.core.file_utils import same_file
from veq.domain.models import JobStatus, VideoJob
from veq.introspector.ffprobe import try_probe_duration
from veq.profiles.models import Profile
from veq.profiles.paths import derive_output_path

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({"mp4", "mkv", "webm", "mov", "avi", "flv", "m4v", "wmv"})

SKIP_OUTPUT_EXISTS = "output exists"
SKIP_SAME_AS_INPUT = "output is the input file"


def is_video_file(path: Path | str) -> bool:
    """True if the file extension is a known video extension (any case)."""
    suffix = os.path.splitext(str(path))[1]
    return suffix[1:].lower() in VIDEO_EXTENSIONS


def _walk(directory: str, *, is_root: bool) -> Iterator[Path]:
    try:
        with os.scandir(directory) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
    except OSError as e:
        if is_root:
            raise
        logger.debug("Skipping unreadable directory %s: %s", directory, e)
        return

    for entry in entries:
        if entry.name.startswith("."):
            continue
        try:
            if entry.is_dir(follow_symlinks=False):
                yield from _walk(entry.path, is_root=False)
            elif entry.is_file(follow_symlinks=False) and is_video_file(entry.name):
                yield Path(entry.path)
        except OSError as e:
            logger.debug("Skipping %s: %s", entry.path, e)


def iter_video_files(root: Path) -> Iterator[Path]:
    """Yield video files under ``root`` recursively.

    Raises:
        OSError: If ``root`` itself cannot be read.
    """
    return _walk(str(root), is_root=True)


def scan_streaming(root: Path, callback: Callable[[Path], None]) -> int:
    """Call ``callback`` for each video file under ``root`` as it is found.

    Unreadable entries below the root are logged at debug level and
    skipped.

    Args:
        root: Directory to scan.
        callback: Invoked once per matching file.

    Returns:
        Number of files reported.

    Raises:
        OSError: If the root directory cannot be read.
    """
    count = 0
    for path in iter_video_files(root):
        callback(path)
        count += 1
    logger.debug("Scan of %s found %d video file(s)", root, count)
    return count


def build_job_from_path(
    path: Path,
    profile: Profile,
    overwrite: bool = False,
    output_dir: Path | None = None,
    filename_pattern: str = "",
    container: str | None = None,
    probe: bool = True,
    ffprobe: str = "ffprobe",
) -> VideoJob:
    """Create the encode job for one input file.

    The job is Skipped when its output would replace the input itself, or
    when the output already exists and overwriting is off. A failed
    duration probe leaves ``duration_s`` as None.

    Args:
        path: Input video.
        profile: Profile whose name and suffix the job uses.
        overwrite: Replace existing outputs.
        output_dir: Output directory, or None to write beside the input.
        filename_pattern: Output name template.
        container: Output container; defaults to the profile's.
        probe: Probe the input duration for progress and ETA.
        ffprobe: ffprobe executable.
    """
    output_path = derive_output_path(
        path,
        output_dir,
        filename_pattern,
        profile.suffix,
        container or profile.container,
    )
    job = VideoJob(
        input_path=path,
        output_path=output_path,
        profile=profile.name,
        overwrite=overwrite,
    )
    if probe:
        job.duration_s = try_probe_duration(path, ffprobe)
    if same_file(path, output_path):
        job.status = JobStatus.SKIPPED
        job.skip_reason = SKIP_SAME_AS_INPUT
        logger.warning("Output would replace its own input, skipping %s", path)
    elif not overwrite and output_path.exists():
        job.status = JobStatus.SKIPPED
        job.skip_reason = SKIP_OUTPUT_EXISTS
        logger.debug("Output exists, skipping %s", path)
    return job


def build_job_queue(
    root: Path,
    profile: Profile,
    overwrite: bool = False,
    output_dir: Path | None = None,
    filename_pattern: str = "",
    container: str | None = None,
    probe: bool = True,
    ffprobe: str = "ffprobe",
) -> list[VideoJob]:
    """Scan ``root`` and build one job per video, sorted by input path.

    When several inputs map to the same output (``a.mkv`` and ``a.mp4``
    both becoming ``a.webm``), the first one in path order keeps it and
    the others are Skipped.
    """
    files = sorted(iter_video_files(root))
    jobs = [
        build_job_from_path(
            path,
            profile,
            overwrite=overwrite,
            output_dir=output_dir,
            filename_pattern=filename_pattern,
            container=container,
            probe=probe,
            ffprobe=ffprobe,
        )
        for path in files
    ]
    claimed: dict[Path, VideoJob] = {}
    for job in jobs:
        key = job.output_path.resolve()
        owner = claimed.setdefault(key, job)
        if owner is not job and job.status is JobStatus.PENDING:
            job.status = JobStatus.SKIPPED
            job.skip_reason = f"output also claimed by {owner.input_path.name}"
            logger.warning(
                "Skipping %s: %s is already the output of %s",
                job.input_path,
                job.output_path,
                owner.input_path,
            )
    skipped = sum(1 for job in jobs if job.status is JobStatus.SKIPPED)
    logger.info(
        "Built %d job(s) from %s (%d skipped)",
        len(jobs),
        root,
        skipped,
    )
    return jobs
