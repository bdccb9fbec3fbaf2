"""File helpers for queue persistence and encode cleanup."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str) -> None:
    """Write text to a file via temp file + rename.

    The temp file is created in the target directory so the final rename
    stays on one filesystem. Readers see either the old or the new content.

    Args:
        path: Destination file.
        content: Text to write (UTF-8).

    Raises:
        OSError: If the directory is not writable or the rename fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path_str = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=path.parent,
        text=True,
    )
    temp_path = Path(temp_path_str)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(path)  # Atomic on POSIX
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def remove_file_quietly(path: Path, reason: str = "") -> bool:
    """Remove a file if it exists, logging instead of raising.

    Args:
        path: File to remove.
        reason: Short description used in the log message.

    Returns:
        True if a file was removed.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Could not remove %s (%s): %s", path, reason or "cleanup", e)
        return False
    logger.debug("Removed %s (%s)", path, reason or "cleanup")
    return True


def same_file(a: Path, b: Path) -> bool:
    """True if two paths name the same file, whether or not it exists yet."""
    try:
        if a.exists() and b.exists():
            return os.path.samefile(a, b)
        return a.resolve() == b.resolve()
    except OSError:
        return False
