"""Queue commands: ``veq scan``, ``veq dry-run`` and ``veq encode``."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from veq.cli import get_cli_config
from veq.config import VeqConfig
from veq.domain.models import JobStatus, VideoJob
from veq.executor.transcode import (
    build_commands,
    detect_build_context,
    format_commands,
    select_encoder,
)
from veq.jobs import (
    JobCompleted,
    JobFailed,
    JobStarted,
    QueueRunner,
    StateError,
    WorkerMessage,
    WorkerPool,
    load_ledger,
    load_state,
)
from veq.profiles import Profile, ProfileError, resolve_profile
from veq.profiles.validation import validate_profile
from veq.scanner import build_job_queue
from veq.tools.hardware import CapabilityMatrix, detect_capabilities

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130

_directory_argument = click.argument(
    "directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)


def _queue_options(func):
    """Options shared by every command that builds a queue."""
    options = [
        click.option(
            "--profile",
            "-p",
            "profile_name",
            default=None,
            help="Profile name (default from config).",
        ),
        click.option(
            "--overwrite",
            is_flag=True,
            default=False,
            help="Re-encode even when the output exists.",
        ),
        click.option(
            "--output-dir",
            type=click.Path(file_okay=False, path_type=Path),
            default=None,
            help="Write outputs here instead of beside the inputs.",
        ),
        click.option(
            "--hardware/--software",
            default=None,
            help="Force hardware or software encoding.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _resolve(
    config: VeqConfig, profile_name: str | None, hardware: bool | None
) -> Profile:
    name = profile_name or config.defaults.profile
    try:
        profile = resolve_profile(name, config.profiles_dir)
    except ProfileError as e:
        raise click.ClickException(str(e)) from e
    if hardware is None:
        hardware = config.defaults.use_hardware_encoding
    if hardware is not None and hardware != profile.use_hardware_encoding:
        profile = profile.copy()
        profile.use_hardware_encoding = hardware
    return profile


def _build_jobs(
    config: VeqConfig,
    root: Path,
    profile: Profile,
    *,
    overwrite: bool,
    output_dir: Path | None,
    probe: bool = True,
) -> list[VideoJob]:
    try:
        return build_job_queue(
            root,
            profile,
            overwrite=overwrite or config.defaults.overwrite,
            output_dir=output_dir or config.jobs.output_dir,
            filename_pattern=config.defaults.filename_pattern,
            container=config.defaults.output_container,
            probe=probe,
            ffprobe=config.tools.ffprobe_cmd,
        )
    except OSError as e:
        raise click.ClickException(f"Cannot scan {root}: {e}") from e


def _check_profile(profile: Profile, capabilities: CapabilityMatrix) -> None:
    errors = validate_profile(profile, capabilities)
    if not errors:
        return
    click.echo(f"Profile {profile.name!r} is not valid for this host:", err=True)
    for error in errors:
        click.echo(f"  {error}", err=True)
    raise SystemExit(1)


@click.command("scan")
@_directory_argument
@_queue_options
@click.option("--probe", is_flag=True, help="Probe durations with ffprobe.")
@click.pass_context
def scan_command(
    ctx: click.Context,
    directory: Path,
    profile_name: str | None,
    overwrite: bool,
    output_dir: Path | None,
    hardware: bool | None,
    probe: bool,
) -> None:
    """List the videos under DIRECTORY and the job each would become."""
    config = get_cli_config(ctx)
    profile = _resolve(config, profile_name, hardware)
    jobs = _build_jobs(
        config,
        directory,
        profile,
        overwrite=overwrite,
        output_dir=output_dir,
        probe=probe,
    )
    for job in jobs:
        line = f"{job.status.value:<8} {job.input_path} -> {job.output_path}"
        if job.duration_s is not None:
            line += f" ({job.duration_s:.1f}s)"
        click.echo(line)
    skipped = sum(1 for job in jobs if job.status is JobStatus.SKIPPED)
    click.echo(f"\n{len(jobs)} video(s), {len(jobs) - skipped} to encode")


@click.command("dry-run")
@_directory_argument
@_queue_options
@click.pass_context
def dry_run_command(
    ctx: click.Context,
    directory: Path,
    profile_name: str | None,
    overwrite: bool,
    output_dir: Path | None,
    hardware: bool | None,
) -> None:
    """Print the ffmpeg commands an encode of DIRECTORY would run."""
    config = get_cli_config(ctx)
    profile = _resolve(config, profile_name, hardware)
    capabilities = detect_capabilities(ffmpeg=config.tools.ffmpeg_cmd)
    jobs = _build_jobs(
        config, directory, profile, overwrite=overwrite, output_dir=output_dir
    )
    encoder = select_encoder(profile, capabilities)
    click.echo(f"# profile {profile.name} using {encoder.value}")
    if profile.vmaf_enabled:
        click.echo("# quality is calibrated with Auto-VMAF before each encode")

    for job in jobs:
        if job.status is not JobStatus.PENDING:
            reason = job.skip_reason or "output exists"
            click.echo(f"# skipped ({reason}): {job.input_path}")
            continue
        context = detect_build_context(job.input_path, config=config)
        commands = build_commands(
            job, profile, capabilities=capabilities, context=context
        )
        click.echo(f"# {job.input_path} -> {job.output_path}")
        click.echo(format_commands(commands, config.tools.ffmpeg_cmd))


def _print_message(job: VideoJob | None, message: WorkerMessage) -> None:
    if job is None:
        return
    if isinstance(message, JobStarted):
        click.echo(f"[start]  {job.filename}")
    elif isinstance(message, JobCompleted):
        click.echo(f"[done]   {job.filename}")
    elif isinstance(message, JobFailed):
        click.echo(f"[failed] {job.filename}: {message.error}", err=True)


@click.command("encode")
@_directory_argument
@_queue_options
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=None,
    help="Concurrent encodes (default from config).",
)
@click.option(
    "--fresh",
    is_flag=True,
    help="Ignore the saved queue and ledger and rescan the directory.",
)
@click.pass_context
def encode_command(
    ctx: click.Context,
    directory: Path,
    profile_name: str | None,
    overwrite: bool,
    output_dir: Path | None,
    hardware: bool | None,
    workers: int | None,
    fresh: bool,
) -> None:
    """Encode every pending video under DIRECTORY.

    A previous run's queue in DIRECTORY is resumed unless --fresh is given.
    Exits with status 1 if any encode failed and 130 when interrupted.
    """
    config = get_cli_config(ctx)
    root = directory.resolve()

    state = None
    if not fresh:
        try:
            state = load_state(root)
        except StateError as e:
            raise click.ClickException(f"{e} (use --fresh to start over)") from e

    if state is not None:
        if profile_name and profile_name != state.selected_profile:
            raise click.ClickException(
                f"Saved queue uses profile {state.selected_profile!r}; "
                "use --fresh to start over with another profile"
            )
        profile = state.profile_config or _resolve(
            config, state.selected_profile, hardware
        )
        jobs = state.jobs
        click.echo(f"Resuming queue in {root} ({len(jobs)} job(s))")
    else:
        profile = _resolve(config, profile_name, hardware)
        jobs = _build_jobs(
            config, root, profile, overwrite=overwrite, output_dir=output_dir
        )
    if not fresh:
        load_ledger(root, jobs)

    capabilities = detect_capabilities(ffmpeg=config.tools.ffmpeg_cmd)
    _check_profile(profile, capabilities)

    pool = WorkerPool(workers or config.defaults.max_workers, config=config)
    runner = QueueRunner(
        jobs,
        profile,
        pool,
        root=root,
        capabilities=capabilities,
        on_message=_print_message,
    )
    summary = runner.run()

    click.echo(
        f"\n{summary.completed} completed, {summary.failed} failed, "
        f"{summary.skipped} skipped"
    )
    if summary.interrupted:
        raise SystemExit(EXIT_INTERRUPTED)
    if summary.failed:
        raise SystemExit(1)
