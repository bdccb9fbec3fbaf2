"""FFmpeg ``-progress`` output parsing.

ffmpeg writes one ``key=value`` pair per line to the progress pipe and ends
every block with ``progress=continue`` (or ``progress=end`` for the final
block). ``ProgressParser`` consumes those lines one by one and keeps the most
recent value for each field it understands.
"""

from __future__ import annotations

from dataclasses import dataclass

# ffmpeg spells these in microseconds despite the _ms name on older builds
_OUT_TIME_KEYS = frozenset(("out_time_us", "out_time_ms"))


def parse_progress_line(line: str) -> tuple[str, str] | None:
    """Split a progress line into ``(key, value)``.

    Args:
        line: A raw line from ffmpeg's progress output.

    Returns:
        The stripped key and value, or None when the line has no ``=``.
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    return key.strip(), value.strip()


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable copy of the parser state, safe to pass between threads."""

    out_time_us: int = 0
    fps: float | None = None
    speed: float | None = None
    bitrate_kbps: float | None = None
    total_size: int | None = None
    is_complete: bool = False

    @property
    def out_time_s(self) -> float:
        return self.out_time_us / 1_000_000

    def progress_pct(self, duration_s: float | None) -> float:
        if not duration_s or duration_s <= 0:
            return 0.0
        return min(100.0, self.out_time_s / duration_s * 100)


class ProgressParser:
    """Incremental decoder for ffmpeg progress lines.

    Unknown keys are ignored. A value that does not parse leaves the
    previous value in place, so a stray ``N/A`` never wipes good data.

    Example:
        >>> parser = ProgressParser()
        >>> for line in ("out_time_us=1500000", "speed=2.5x", "progress=end"):
        ...     parser.parse_line(line)
        >>> parser.out_time_s, parser.speed, parser.is_complete
        (1.5, 2.5, True)
    """

    def __init__(self) -> None:
        self.out_time_us: int = 0
        self.fps: float | None = None
        self.speed: float | None = None
        self.bitrate_kbps: float | None = None
        self.total_size: int | None = None
        self.is_complete: bool = False

    def parse_line(self, line: str) -> bool:
        """Apply one progress line.

        Returns:
            True if the line updated any field.
        """
        parsed = parse_progress_line(line)
        if parsed is None:
            return False
        key, value = parsed

        try:
            if key in _OUT_TIME_KEYS:
                out_time = int(value)
                if out_time < 0:
                    return False
                self.out_time_us = out_time
            elif key == "fps":
                self.fps = float(value)
            elif key == "speed":
                self.speed = float(value.removesuffix("x").strip())
            elif key == "bitrate":
                self.bitrate_kbps = float(value.removesuffix("kbits/s").strip())
            elif key == "total_size":
                self.total_size = int(value)
            elif key == "progress":
                if value != "end":
                    return False
                self.is_complete = True
            else:
                return False
        except ValueError:
            return False
        return True

    @property
    def out_time_s(self) -> float:
        return self.out_time_us / 1_000_000

    def progress_pct(self, duration_s: float | None) -> float:
        """Percent of ``duration_s`` already written, capped at 100.

        Returns 0.0 when the duration is unknown or not positive.
        """
        if not duration_s or duration_s <= 0:
            return 0.0
        return min(100.0, self.out_time_s / duration_s * 100)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            out_time_us=self.out_time_us,
            fps=self.fps,
            speed=self.speed,
            bitrate_kbps=self.bitrate_kbps,
            total_size=self.total_size,
            is_complete=self.is_complete,
        )
