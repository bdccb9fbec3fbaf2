"""Root logger setup from a LoggingConfig."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

from veq.logging.context import WorkerContextFilter
from veq.logging.handlers import JSONFormatter

if TYPE_CHECKING:
    from veq.config.models import LoggingConfig

_LEVEL_MAP: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(worker_tag)s%(name)s: %(message)s"


def configure_logging(config: LoggingConfig) -> None:
    """Install handlers on the root logger.

    Existing root handlers are replaced. When the configured log file cannot
    be opened a warning is written to stderr and logging falls back to the
    stderr handler.

    Args:
        config: Level, format, optional file and rotation settings.
    """
    level = _LEVEL_MAP.get(config.level.casefold(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.format.casefold() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    context_filter = WorkerContextFilter()

    handlers: list[logging.Handler] = []
    if config.file is not None:
        try:
            log_path = config.file.expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    log_path,
                    maxBytes=config.max_bytes,
                    backupCount=config.backup_count,
                    encoding="utf-8",
                )
            )
        except OSError as e:
            sys.stderr.write(f"Warning: cannot open log file {config.file}: {e}\n")

    if config.include_stderr or not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)
