"""Resumable queue state (``<root>/.enc_state``).

The state file is pretty-printed JSON written atomically, so a crash during
a save leaves the previous state intact. Loading prepares the queue for a
resumed run: interrupted and failed jobs go back to Pending, and the
truncated outputs of interrupted or cancelled jobs are deleted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from veq.core.file_utils import atomic_write_text, remove_file_quietly, same_file
from veq.domain.models import JobStatus, VideoJob
from veq.profiles.models import Profile, ProfileError

logger = logging.getLogger(__name__)

STATE_FILENAME = ".enc_state"


class StateError(Exception):
    """Raised when a state file exists but cannot be parsed."""


@dataclass
class EncState:
    """A queue snapshot: jobs plus the profile they were built with.

    Attributes:
        jobs: Jobs in queue order.
        selected_profile: Name of the profile chosen for the run.
        root_path: Directory that was scanned; the state file lives here.
        profile_config: Full profile, taking precedence over the name when
            the profile has been edited since it was saved.
    """

    jobs: list[VideoJob] = field(default_factory=list)
    selected_profile: str = ""
    root_path: Path = field(default_factory=Path)
    profile_config: Profile | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [job.to_dict() for job in self.jobs],
            "selected_profile": self.selected_profile,
            "root_path": str(self.root_path),
            "profile_config": (
                self.profile_config.to_dict()
                if self.profile_config is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EncState:
        profile_data = data.get("profile_config")
        return cls(
            jobs=[VideoJob.from_dict(item) for item in data.get("jobs") or []],
            selected_profile=str(data.get("selected_profile", "")),
            root_path=Path(data.get("root_path", ".")),
            profile_config=(
                Profile.from_dict(profile_data) if profile_data is not None else None
            ),
        )


def state_path(root: Path) -> Path:
    return root / STATE_FILENAME


def state_exists(root: Path) -> bool:
    return state_path(root).exists()


def save_state(state: EncState, root: Path | None = None) -> bool:
    """Write ``state`` to ``<root>/.enc_state``.

    Args:
        state: State to persist.
        root: Target directory; defaults to ``state.root_path``.

    Returns:
        True on success. Failures are logged, never raised.
    """
    path = state_path(root if root is not None else state.root_path)
    try:
        atomic_write_text(path, json.dumps(state.to_dict(), indent=2) + "\n")
    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to save queue state to %s: %s", path, e)
        return False
    logger.debug("Saved queue state (%d jobs) to %s", len(state.jobs), path)
    return True


def normalize_for_resume(state: EncState, remove_partial: bool = True) -> int:
    """Reset interrupted and failed jobs to Pending.

    Jobs that were Running or Calibrating when the previous process died
    have a truncated output at best, and so do Failed jobs whose ffmpeg was
    cancelled (``partial_output``). Those outputs are deleted unless
    ``remove_partial`` is False. Other failures already had their output
    removed by the executor. An output that is the job's own input is never
    deleted.

    Returns:
        Number of jobs reset.
    """
    reset = 0
    for job in state.jobs:
        truncated = job.status.is_active or (
            job.status is JobStatus.FAILED and job.partial_output
        )
        if not job.reset_for_resume():
            continue
        reset += 1
        if not (truncated and remove_partial):
            continue
        if same_file(job.input_path, job.output_path):
            logger.warning("Not removing %s: it is the job's input", job.output_path)
        else:
            remove_file_quietly(job.output_path, "interrupted encode")
        job.partial_output = False
    if reset:
        logger.info("Reset %d interrupted or failed job(s) to pending", reset)
    return reset


def load_state(root: Path, remove_partial: bool = True) -> EncState | None:
    """Load and normalize ``<root>/.enc_state``.

    Args:
        root: Directory holding the state file.
        remove_partial: Delete outputs of jobs that were interrupted.

    Returns:
        The state, or None when no state file exists.

    Raises:
        StateError: If the file exists but is unreadable or malformed.
    """
    path = state_path(root)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StateError(f"Cannot read {path}: {e}") from e

    try:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("top level is not an object")
        state = EncState.from_dict(data)
    except (KeyError, TypeError, ValueError, ProfileError) as e:
        raise StateError(f"Corrupt queue state in {path}: {e}") from e

    normalize_for_resume(state, remove_partial=remove_partial)
    logger.info(
        "Loaded queue state from %s: %d job(s), %d pending",
        path,
        len(state.jobs),
        sum(1 for job in state.jobs if job.status is JobStatus.PENDING),
    )
    return state
