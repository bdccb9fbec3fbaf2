"""Subprocess utilities for external tool invocation.

Standard wrapper used for the short-lived ffmpeg/ffprobe calls (probes,
capability checks, calibration encodes) so timeout handling, decoding and
logging stay consistent. Long-running encodes stream their output and use
the executor's own process loop instead.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404 - subprocess is required for FFmpeg invocation
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def run_command(
    args: list[str | Path],
    timeout: float = 120,
    env: Mapping[str, str] | None = None,
    errors: str = "replace",
    **kwargs: Any,
) -> tuple[str, str, int]:
    """Run external command with standard error handling.

    Args:
        args: Command and arguments. Path objects are converted to strings.
        timeout: Timeout in seconds (default 120).
        env: Full environment for the child, or None to inherit.
        errors: Error handling mode for text decoding (default "replace").
        **kwargs: Additional subprocess.run arguments.

    Returns:
        Tuple of (stdout, stderr, returncode).

    Raises:
        subprocess.TimeoutExpired: If the command times out. The child is
            killed by subprocess.run before the exception propagates.
        OSError: If the executable cannot be started.

    Example:
        >>> stdout, stderr, rc = run_command(["ffprobe", "-version"])
        >>> if rc == 0:
        ...     print(stdout.splitlines()[0])
    """
    str_args = [str(arg) for arg in args]
    command_name = str_args[0].split("/")[-1] if str_args else "unknown"

    logger.debug(
        "Executing command: %s",
        " ".join(str_args),
        extra={"command": command_name, "arg_count": len(str_args)},
    )

    start_time = time.monotonic()

    try:
        result = subprocess.run(  # nosec B603 - args are built internally
            str_args,
            capture_output=True,
            text=True,
            errors=errors,
            timeout=timeout,
            env=dict(env) if env is not None else None,
            **kwargs,
        )
    except subprocess.TimeoutExpired:
        elapsed = time.monotonic() - start_time
        logger.warning(
            "Command timed out after %ss: %s",
            timeout,
            " ".join(str_args[:3]) + ("..." if len(str_args) > 3 else ""),
            extra={
                "command": command_name,
                "timeout_seconds": timeout,
                "elapsed_seconds": round(elapsed, 3),
            },
        )
        raise

    elapsed = time.monotonic() - start_time
    logger.debug(
        "Command completed",
        extra={
            "command": command_name,
            "elapsed_seconds": round(elapsed, 3),
            "returncode": result.returncode,
        },
    )
    return result.stdout or "", result.stderr or "", result.returncode
