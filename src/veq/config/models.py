"""Configuration data models.

Every section is a dataclass with defaults so a missing config file, or a
file that only sets a few keys, still yields a complete ``VeqConfig``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

VALID_LOG_LEVELS = frozenset({"debug", "info", "warning", "error"})
VALID_LOG_FORMATS = frozenset({"text", "json"})


class ConfigError(Exception):
    """Raised when the config file or an override holds an invalid value."""


@dataclass
class ToolPathsConfig:
    """Locations of the external tools. None means look up on PATH."""

    ffmpeg: Path | None = None
    ffprobe: Path | None = None

    @property
    def ffmpeg_cmd(self) -> str:
        return str(self.ffmpeg) if self.ffmpeg else "ffmpeg"

    @property
    def ffprobe_cmd(self) -> str:
        return str(self.ffprobe) if self.ffprobe else "ffprobe"


@dataclass
class LoggingConfig:
    """Log level, format and optional rotating log file."""

    level: str = "info"
    file: Path | None = None
    format: str = "text"
    # Also log to stderr when a file is set
    include_stderr: bool = False
    max_bytes: int = 10_485_760
    backup_count: int = 5

    def __post_init__(self) -> None:
        if self.level.lower() not in VALID_LOG_LEVELS:
            raise ConfigError(
                f"logging.level must be one of {sorted(VALID_LOG_LEVELS)}, "
                f"got {self.level!r}"
            )
        if self.format.lower() not in VALID_LOG_FORMATS:
            raise ConfigError(
                f"logging.format must be one of {sorted(VALID_LOG_FORMATS)}, "
                f"got {self.format!r}"
            )


@dataclass
class DefaultsConfig:
    """Defaults applied when the CLI does not say otherwise."""

    profile: str = "vp9-good"
    max_workers: int = 1
    overwrite: bool = False
    use_hardware_encoding: bool | None = None
    filename_pattern: str = ""
    output_container: str | None = None
    # Pick p010/nv12 for QSV from the source bit depth when pix_fmt is auto
    auto_bit_depth: bool = True
    disable_vaapi_fallback: bool = False

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ConfigError(
                f"defaults.max_workers must be >= 1, got {self.max_workers}"
            )


@dataclass
class JobsConfig:
    """Runtime behaviour of encode jobs."""

    # Seconds without any progress line before an encode is killed; 0 disables
    stall_timeout_seconds: float = 0.0
    output_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.stall_timeout_seconds < 0:
            raise ConfigError(
                "jobs.stall_timeout_seconds must be >= 0, "
                f"got {self.stall_timeout_seconds}"
            )


@dataclass
class VeqConfig:
    """Complete application configuration."""

    tools: ToolPathsConfig = field(default_factory=ToolPathsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    data_dir: Path = field(default_factory=lambda: Path.home() / ".veq")

    @property
    def profiles_dir(self) -> Path:
        return self.data_dir / "profiles"
