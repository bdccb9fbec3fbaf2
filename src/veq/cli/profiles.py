"""CLI commands for encoding profile management."""

from __future__ import annotations

import json
from pathlib import Path

import click
import yaml

from veq.cli import get_cli_config
from veq.executor.transcode import Encoder
from veq.params import params_for_encoder
from veq.profiles import (
    Profile,
    ProfileError,
    ProfileNotFoundError,
    builtin_names,
    delete_profile,
    is_builtin,
    list_profiles,
    load_profile_file,
    resolve_profile,
    save_profile,
)
from veq.profiles.validation import target_encoder, validate_profile
from veq.tools.hardware import detect_capabilities


@click.group("profiles")
def profiles_group() -> None:
    """Manage encoding profiles."""


def _load(ctx: click.Context, name: str) -> Profile:
    config = get_cli_config(ctx)
    try:
        return resolve_profile(name, config.profiles_dir)
    except ProfileNotFoundError:
        user = list_profiles(config.profiles_dir)
        available = sorted(set(builtin_names()) | set(user))
        click.echo(f"Error: Profile '{name}' not found.", err=True)
        click.echo("\nAvailable profiles:", err=True)
        for item in available:
            click.echo(f"  - {item}", err=True)
        raise click.Abort() from None
    except ProfileError as e:
        raise click.ClickException(str(e)) from e


@profiles_group.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def list_profiles_cmd(ctx: click.Context, json_output: bool) -> None:
    """List built-in and user profiles.

    User profiles are YAML files in ~/.veq/profiles/ and take precedence
    over a built-in of the same name.
    """
    config = get_cli_config(ctx)
    user = set(list_profiles(config.profiles_dir))
    names = sorted(set(builtin_names()) | user)

    rows = []
    for name in names:
        try:
            profile = resolve_profile(name, config.profiles_dir)
        except ProfileError as e:
            rows.append({"name": name, "source": "user", "error": str(e)})
            continue
        rows.append(
            {
                "name": profile.name,
                "source": "user" if name in user else "builtin",
                "codec": profile.video_codec,
                "hardware": profile.use_hardware_encoding,
            }
        )

    if json_output:
        click.echo(json.dumps(rows, indent=2))
        return

    click.echo(f"{'NAME':<20} {'SOURCE':<8} {'CODEC':<12} {'HW':<3}")
    click.echo("-" * 46)
    for row in rows:
        if "error" in row:
            click.echo(f"{row['name']:<20} {row['source']:<8} (error: {row['error']})")
            continue
        hw = "yes" if row["hardware"] else "no"
        click.echo(f"{row['name']:<20} {row['source']:<8} {row['codec']:<12} {hw:<3}")


@profiles_group.command("show")
@click.argument("profile_name")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.option(
    "--encoder",
    "encoder_id",
    type=click.Choice([e.value for e in Encoder]),
    default=None,
    help="Show the parameters this encoder takes (default: profile's).",
)
@click.pass_context
def show_profile(
    ctx: click.Context,
    profile_name: str,
    json_output: bool,
    encoder_id: str | None,
) -> None:
    """Show a profile's settings and the encoder parameters it feeds."""
    profile = _load(ctx, profile_name)
    encoder = Encoder(encoder_id) if encoder_id else target_encoder(profile)
    params = {
        param.name: param.accessor(profile)
        for param in params_for_encoder(encoder.value)
    }

    if json_output:
        data = {
            "profile": profile.to_dict(),
            "encoder": encoder.value,
            "parameters": params,
        }
        click.echo(json.dumps(data, indent=2, default=str))
        return

    click.echo(yaml.safe_dump(profile.to_dict(), sort_keys=False).rstrip())
    click.echo(f"\nParameters for {encoder.value}:")
    for name, value in params.items():
        shown = "-" if value is None else value
        click.echo(f"  {name:<24} {shown}")


@profiles_group.command("validate")
@click.argument("profile_name")
@click.option(
    "--no-hardware-check",
    is_flag=True,
    help="Do not check encoder availability on this host.",
)
@click.pass_context
def validate_profile_cmd(
    ctx: click.Context, profile_name: str, no_hardware_check: bool
) -> None:
    """Check a profile against its encoder. Exits 1 on violations."""
    profile = _load(ctx, profile_name)
    capabilities = None
    if not no_hardware_check:
        config = get_cli_config(ctx)
        capabilities = detect_capabilities(ffmpeg=config.tools.ffmpeg_cmd)

    errors = validate_profile(profile, capabilities)
    if not errors:
        click.echo(f"Profile {profile.name!r} is valid.")
        return
    for error in errors:
        click.echo(f"  {error}", err=True)
    raise SystemExit(1)


@profiles_group.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_profile(ctx: click.Context, file: Path) -> None:
    """Copy a profile YAML FILE into the profiles directory."""
    config = get_cli_config(ctx)
    try:
        profile = load_profile_file(file)
        path = save_profile(profile, config.profiles_dir)
    except ProfileError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Saved profile {profile.name!r} to {path}")


@profiles_group.command("delete")
@click.argument("profile_name")
@click.pass_context
def delete_profile_cmd(ctx: click.Context, profile_name: str) -> None:
    """Delete a user profile. Built-in profiles cannot be deleted."""
    config = get_cli_config(ctx)
    try:
        delete_profile(profile_name, config.profiles_dir)
    except ProfileNotFoundError as e:
        if is_builtin(profile_name):
            raise click.ClickException(
                f"{profile_name!r} is a built-in profile"
            ) from e
        raise click.ClickException(str(e)) from e
    click.echo(f"Deleted profile {profile_name!r}")
