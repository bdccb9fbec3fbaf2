"""Core utilities package.

Small helpers shared across the codebase: subprocess invocation and
crash-safe file writes.
"""

from veq.core.file_utils import (
    atomic_write_text,
    remove_file_quietly,
    same_file,
)
from veq.core.subprocess_utils import run_command

__all__ = [
    "atomic_write_text",
    "remove_file_quietly",
    "same_file",
    "run_command",
]
