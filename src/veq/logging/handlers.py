"""JSON formatter for machine-readable log files."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord carries; anything else came from ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

# Set by WorkerContextFilter and emitted under their own keys.
_CONTEXT_ATTRS: tuple[str, ...] = ("worker_id", "job_id", "file_path")


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Keys: ``timestamp`` (ISO-8601 UTC), ``level``, ``logger``, ``message``,
    the worker context fields when bound, ``extra`` for any values passed via
    ``extra=``, and ``exception`` when exc_info is set.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _CONTEXT_ATTRS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
            and key not in _CONTEXT_ATTRS
            and key != "worker_tag"
            and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)
