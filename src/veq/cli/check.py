"""``veq check`` and ``veq probe``: host and input diagnostics."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

import click

from veq.cli import get_cli_config
from veq.introspector.ffprobe import (
    MediaIntrospectionError,
    probe_input_info,
    tool_version,
)
from veq.tools.hardware import (
    detect_capabilities,
    detect_vaapi_config,
    vmaf_filter_available,
)


@click.command("check")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def check_command(ctx: click.Context, json_output: bool) -> None:
    """Check ffmpeg/ffprobe and report the available encoders.

    Exits with status 1 when ffmpeg or ffprobe cannot be run.
    """
    config = get_cli_config(ctx)
    ffmpeg = config.tools.ffmpeg_cmd
    ffprobe = config.tools.ffprobe_cmd

    ffmpeg_version = tool_version(ffmpeg)
    ffprobe_version = tool_version(ffprobe)
    capabilities = detect_capabilities(ffmpeg=ffmpeg) if ffmpeg_version else None
    vaapi = detect_vaapi_config() if capabilities else None
    vmaf = vmaf_filter_available(ffmpeg) if ffmpeg_version else False

    if json_output:
        data = {
            "ffmpeg": ffmpeg_version,
            "ffprobe": ffprobe_version,
            "encoders": capabilities.as_dict() if capabilities else {},
            "vaapi_driver": vaapi.driver.name if vaapi else None,
            "render_device": vaapi.render_device if vaapi else None,
            "libvmaf": vmaf,
        }
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(f"ffmpeg:  {ffmpeg_version or 'NOT FOUND'}")
        click.echo(f"ffprobe: {ffprobe_version or 'NOT FOUND'}")
        if capabilities is not None:
            click.echo("")
            click.echo("Encoders:")
            click.echo("  libvpx-vp9   yes")
            for name, available in capabilities.as_dict().items():
                label = "libsvtav1" if name == "av1_svt" else name
                click.echo(f"  {label:<12} {'yes' if available else 'no'}")
            click.echo("")
            if vaapi is not None:
                click.echo(
                    f"VAAPI driver: {vaapi.driver.name} ({vaapi.driver.path}), "
                    f"device {vaapi.render_device}"
                )
            else:
                click.echo("VAAPI driver: none found")
            click.echo(f"libvmaf:      {'yes' if vmaf else 'no'}")

    if not ffmpeg_version or not ffprobe_version:
        raise SystemExit(1)


@click.command("probe")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def probe_command(ctx: click.Context, file: Path) -> None:
    """Show what ffprobe reports about FILE's video stream."""
    config = get_cli_config(ctx)
    try:
        info = probe_input_info(file, config.tools.ffprobe_cmd)
    except MediaIntrospectionError as e:
        raise click.ClickException(str(e)) from e
    click.echo(json.dumps(asdict(info), indent=2))
