"""CLI module for veq."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import click

from veq.config import ConfigError, VeqConfig, get_config
from veq.logging import configure_logging

logger = logging.getLogger(__name__)


def _load_config(
    config_path: Path | None,
    ffmpeg: Path | None,
    ffprobe: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> VeqConfig:
    try:
        config = get_config(
            config_path,
            ffmpeg_path=ffmpeg,
            ffprobe_path=ffprobe,
            log_level=log_level,
        )
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    log_cfg = config.logging
    if log_file is not None:
        log_cfg = replace(log_cfg, file=log_file)
    if log_json:
        log_cfg = replace(log_cfg, format="json")
    return replace(config, logging=log_cfg)


def get_cli_config(ctx: click.Context) -> VeqConfig:
    """Config resolved by the ``veq`` group for the running command."""
    return ctx.find_root().obj["config"]


@click.group()
@click.version_option(package_name="veq")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default: ~/.veq/config.toml).",
)
@click.option(
    "--ffmpeg",
    type=click.Path(path_type=Path),
    default=None,
    help="ffmpeg executable to use.",
)
@click.option(
    "--ffprobe",
    type=click.Path(path_type=Path),
    default=None,
    help="ffprobe executable to use.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    ffmpeg: Path | None,
    ffprobe: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """veq - batch encode video libraries to VP9 and AV1 with ffmpeg."""
    ctx.ensure_object(dict)
    # Tests may inject a ready config
    if "config" not in ctx.obj:
        config = _load_config(
            config_path, ffmpeg, ffprobe, log_level, log_file, log_json
        )
        configure_logging(config.logging)
        ctx.obj["config"] = config
    logger.debug("veq starting: data_dir=%s", ctx.obj["config"].data_dir)


# Defer import to avoid circular dependency
def _register_commands() -> None:
    from veq.cli.check import check_command, probe_command
    from veq.cli.profiles import profiles_group
    from veq.cli.queue import dry_run_command, encode_command, scan_command

    main.add_command(check_command)
    main.add_command(probe_command)
    main.add_command(scan_command)
    main.add_command(dry_run_command)
    main.add_command(encode_command)
    main.add_command(profiles_group)


_register_commands()
