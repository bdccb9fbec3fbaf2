"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed directly to get_config)
2. Environment variables (VEQ_*)
3. Config file (~/.veq/config.toml)
4. Default values

Environment variables:
- VEQ_CONFIG_PATH: Path to config file (overrides default location)
- VEQ_DATA_DIR: Data directory holding config.toml and profiles/
- VEQ_FFMPEG_PATH: Path to ffmpeg executable
- VEQ_FFPROBE_PATH: Path to ffprobe executable
- VEQ_MAX_WORKERS: Default number of concurrent encodes
- VEQ_LOG_LEVEL: Log level (debug, info, warning, error)
"""

from __future__ import annotations

import logging
import os
import threading
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from veq.config.models import (
    ConfigError,
    DefaultsConfig,
    JobsConfig,
    LoggingConfig,
    ToolPathsConfig,
    VeqConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".veq"
CONFIG_FILENAME = "config.toml"

# path -> (parsed dict, mtime); reloaded when the file changes
_config_cache: dict[Path, tuple[dict[str, Any], float]] = {}
_config_cache_lock = threading.Lock()


def get_data_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Return the data directory (``VEQ_DATA_DIR`` or ``~/.veq``)."""
    env = os.environ if environ is None else environ
    value = env.get("VEQ_DATA_DIR")
    if value:
        return Path(value).expanduser()
    return DEFAULT_DATA_DIR


def get_default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """Return the config file path (``VEQ_CONFIG_PATH`` or data dir)."""
    env = os.environ if environ is None else environ
    value = env.get("VEQ_CONFIG_PATH")
    if value:
        return Path(value).expanduser()
    return get_data_dir(env) / CONFIG_FILENAME


def load_config_file(path: Path, *, strict: bool = False) -> dict[str, Any]:
    """Parse a TOML config file.

    Results are cached per path and reloaded when the file's mtime changes.

    Args:
        path: Config file location. A missing file yields an empty dict.
        strict: Raise ConfigError on parse errors instead of logging and
            returning an empty dict.

    Returns:
        Parsed TOML document.

    Raises:
        ConfigError: When strict is set and the file cannot be parsed.
    """
    try:
        mtime = path.stat().st_mtime
    except FileNotFoundError:
        return {}

    with _config_cache_lock:
        cached = _config_cache.get(path)
        if cached is not None and cached[1] == mtime:
            return cached[0]

        try:
            with path.open("rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            if strict:
                raise ConfigError(f"Cannot parse config file {path}: {e}") from e
            logger.warning("Ignoring unreadable config file %s: %s", path, e)
            data = {}

        _config_cache[path] = (data, mtime)
        return data


def clear_config_cache() -> None:
    """Forget cached config files. Mostly useful in tests."""
    with _config_cache_lock:
        _config_cache.clear()


def _opt_path(value: Any) -> Path | None:
    if value is None or value == "":
        return None
    return Path(str(value)).expanduser()


def _env_int(env: Mapping[str, str], name: str) -> int | None:
    value = env.get(name)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def get_config(
    config_path: Path | None = None,
    *,
    ffmpeg_path: Path | None = None,
    ffprobe_path: Path | None = None,
    max_workers: int | None = None,
    log_level: str | None = None,
    environ: Mapping[str, str] | None = None,
    strict: bool = False,
) -> VeqConfig:
    """Build the effective configuration.

    Args:
        config_path: Config file to read (overrides VEQ_CONFIG_PATH).
        ffmpeg_path: CLI override for the ffmpeg executable.
        ffprobe_path: CLI override for the ffprobe executable.
        max_workers: CLI override for the default worker count.
        log_level: CLI override for the log level.
        environ: Environment mapping, ``os.environ`` when None.
        strict: Raise on an unparseable config file.

    Returns:
        Merged VeqConfig.

    Raises:
        ConfigError: On invalid values in any layer.
    """
    env = os.environ if environ is None else environ
    path = config_path or get_default_config_path(env)
    data = load_config_file(path, strict=strict)

    tools_s = _section(data, "tools")
    logging_s = _section(data, "logging")
    defaults_s = _section(data, "defaults")
    jobs_s = _section(data, "jobs")

    tools = ToolPathsConfig(
        ffmpeg=ffmpeg_path
        or _opt_path(env.get("VEQ_FFMPEG_PATH"))
        or _opt_path(tools_s.get("ffmpeg")),
        ffprobe=ffprobe_path
        or _opt_path(env.get("VEQ_FFPROBE_PATH"))
        or _opt_path(tools_s.get("ffprobe")),
    )

    try:
        log_cfg = LoggingConfig(
            level=log_level
            or env.get("VEQ_LOG_LEVEL")
            or str(logging_s.get("level", "info")),
            file=_opt_path(logging_s.get("file")),
            format=str(logging_s.get("format", "text")),
            include_stderr=bool(logging_s.get("include_stderr", False)),
            max_bytes=int(logging_s.get("max_bytes", 10_485_760)),
            backup_count=int(logging_s.get("backup_count", 5)),
        )

        workers = max_workers or _env_int(env, "VEQ_MAX_WORKERS")
        defaults = DefaultsConfig(
            profile=str(defaults_s.get("profile", "vp9-good")),
            max_workers=workers or int(defaults_s.get("max_workers", 1)),
            overwrite=bool(defaults_s.get("overwrite", False)),
            use_hardware_encoding=defaults_s.get("use_hardware_encoding"),
            filename_pattern=str(defaults_s.get("filename_pattern", "")),
            output_container=defaults_s.get("output_container"),
            auto_bit_depth=bool(defaults_s.get("auto_bit_depth", True)),
            disable_vaapi_fallback=bool(
                defaults_s.get("disable_vaapi_fallback", False)
            ),
        )

        jobs = JobsConfig(
            stall_timeout_seconds=float(jobs_s.get("stall_timeout_seconds", 0.0)),
            output_dir=_opt_path(jobs_s.get("output_dir")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {path}: {e}") from e

    return VeqConfig(
        tools=tools,
        logging=log_cfg,
        defaults=defaults,
        jobs=jobs,
        data_dir=get_data_dir(env),
    )
