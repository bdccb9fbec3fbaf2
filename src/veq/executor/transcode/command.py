"""FFmpeg command building for encodes.

This module turns a job and a profile into the ffmpeg argument lists for the
selected encoder backend. Building is pure: everything probed or detected
(source stream facts, VAAPI driver, render node) arrives through a
``BuildContext``, so identical inputs always give identical commands.

Plain ``flag value`` parameters come from the parameter registry, group by
group; this module adds the parts that are not simple flags (device setup,
filter chains, ``-svtav1-params``, two-pass, audio and output).

Building never fails. Combinations that make no sense are reported by
``veq.profiles.validation`` instead.
"""

from __future__ import annotations

import logging
import platform
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from veq.domain.models import VideoJob
from veq.params import clamp_profile, emit_args
from veq.profiles.models import HwEncodingConfig, Profile
from veq.tools.hardware import DEFAULT_RENDER_DEVICE, CapabilityMatrix

from .audio import build_audio_args, container_for_output, split_additional_args
from .encoders import Encoder, select_encoder
from .filters import (
    fps_filter,
    needs_fps_limit,
    needs_scale,
    needs_tonemap,
    scale_filter,
    svt_scale_filter,
    tonemap_filters,
    vaapi_postprocess,
    vpp_qsv_filter,
    zscale_color_filter,
)
from .types import BuildContext, EncodeCommand

logger = logging.getLogger(__name__)

TWO_PASS_DIR = "veq_2pass"
PASSLOG_NAME = "ffmpeg2pass"

# Source codecs VAAPI can decode reliably; anything else decodes in software
VAAPI_DECODABLE = frozenset({"h264", "hevc", "vp9", "av1", "mpeg2video"})

_QSV_SURFACE_10BIT = "p010"
_QSV_SURFACE_8BIT = "nv12"


def null_device() -> str:
    """Output target that discards pass-1 output."""
    return "NUL" if platform.system() == "Windows" else "/dev/null"


def two_pass_log_prefix(job: VideoJob) -> Path:
    """Pass-log prefix shared by both passes of a job's encode."""
    return Path(tempfile.gettempdir()) / TWO_PASS_DIR / job.id / PASSLOG_NAME


def uses_two_pass(
    profile: Profile, encoder: Encoder, hw_config: HwEncodingConfig | None = None
) -> bool:
    """Two passes apply only to bitrate-targeted software VP9."""
    return (
        encoder is Encoder.LIBVPX_VP9
        and hw_config is None
        and not profile.use_hardware_encoding
        and profile.vp9 is not None
        and profile.two_pass
        and profile.video_target_bitrate > 0
    )


def format_seconds(value: float) -> str:
    """Seconds as ffmpeg expects them: ``5`` rather than ``5.0``."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(round(value, 3))


def _input_args(job: VideoJob, context: BuildContext) -> list[str]:
    args: list[str] = []
    if context.window is not None:
        start, duration = context.window
        args.extend(["-ss", format_seconds(start), "-t", format_seconds(duration)])
    args.extend(["-i", str(job.input_path), "-progress", "-", "-nostats"])
    return args


def _output_args(
    job: VideoJob,
    profile: Profile,
    context: BuildContext,
    pass_number: int | None = None,
) -> list[str]:
    """Audio, user arguments, overwrite flag and output target."""
    args: list[str] = []
    if pass_number == 1:
        args.append("-an")
    elif context.disable_audio:
        args.extend(["-an", "-sn"])
    else:
        container = container_for_output(job.output_path, profile)
        args.extend(build_audio_args(profile, container))

    args.extend(split_additional_args(profile.additional_args))
    if job.overwrite:
        args.append("-y")

    if pass_number == 1:
        args.extend(["-f", "null", null_device()])
    else:
        args.append(str(job.output_path))
    return args


def _emit(
    encoder: Encoder,
    profile: Profile,
    groups: Iterable[str],
    overrides: Mapping[str, Any] | None = None,
) -> list[str]:
    args: list[str] = []
    for group in groups:
        args.extend(emit_args(encoder.value, profile, group, overrides))
    return args


def _vf(filters: list[str]) -> list[str]:
    return ["-vf", ",".join(filters)] if filters else []


def _hw_overrides(hw: HwEncodingConfig) -> dict[str, Any]:
    """Registry values taken from the resolved hardware rate control."""
    return {
        "hw_global_quality": hw.global_quality,
        "hw_b_frames": hw.b_frames,
        "hw_loop_filter_level": hw.loop_filter_level,
        "hw_loop_filter_sharpness": hw.loop_filter_sharpness,
        "hw_compression_level": hw.compression_level,
    }


def _qsv_setup(context: BuildContext) -> list[str]:
    render = context.render_device or DEFAULT_RENDER_DEVICE
    return ["-init_hw_device", f"qsv=qs:{render}"]


def _vaapi_setup(context: BuildContext) -> tuple[list[str], dict[str, str]]:
    if context.vaapi is None:
        return ["-init_hw_device", f"vaapi=va:{DEFAULT_RENDER_DEVICE}"], {}
    return (
        ["-init_hw_device", f"vaapi=va:{context.vaapi.render_device}"],
        context.vaapi.env(),
    )


def _build_libvpx(
    job: VideoJob,
    profile: Profile,
    context: BuildContext,
    pass_number: int | None,
    passlog: Path | None,
) -> EncodeCommand:
    encoder = Encoder.LIBVPX_VP9
    vp9 = profile.vp9
    cpu_used = vp9.cpu_used if vp9 is not None else 0
    if vp9 is not None and profile.two_pass and pass_number is not None:
        cpu_used = vp9.cpu_used_pass2 if pass_number == 2 else vp9.cpu_used_pass1

    args = _input_args(job, context)
    args.extend(["-c:v", encoder.value])
    args.extend(_emit(encoder, profile, ("bitrate",)))
    args.extend(_emit(encoder, profile, ("speed",), {"cpu_used": cpu_used}))
    args.extend(
        _emit(encoder, profile, ("format", "parallelism", "gop", "tuning", "color"))
    )

    info = context.input_info
    args.extend(
        _vf(
            fps_filter(profile, info)
            + scale_filter(profile, info)
            + tonemap_filters(profile, info)
        )
    )
    if pass_number is not None and passlog is not None:
        args.extend(["-pass", str(pass_number), "-passlogfile", str(passlog)])

    args.extend(_output_args(job, profile, context, pass_number))
    return EncodeCommand(args, {}, encoder.value, pass_number)


def _build_vp9_vaapi(
    job: VideoJob, profile: Profile, context: BuildContext, hw: HwEncodingConfig
) -> EncodeCommand:
    encoder = Encoder.VP9_VAAPI
    info = context.input_info
    args, env = _vaapi_setup(context)

    # Unknown source codecs are assumed decodable
    codec_name = info.codec_name if info is not None else None
    hw_decode = context.window is None and (
        codec_name is None or codec_name in VAAPI_DECODABLE
    )
    needs_filters = (
        needs_fps_limit(profile, info)
        or needs_scale(profile, info)
        or needs_tonemap(profile, info)
    )

    if context.window is None:
        args.extend(["-hwaccel", "vaapi"])
    args.extend(["-filter_hw_device", "va"])
    if hw_decode and not needs_filters:
        args.extend(["-hwaccel_output_format", "vaapi"])
    args.extend(_input_args(job, context))

    if needs_filters or not hw_decode:
        vp9 = profile.vp9
        filters = (
            fps_filter(profile, info, keyed=False)
            + scale_filter(profile, info)
            + tonemap_filters(profile, info)
            + ["format=nv12", "hwupload"]
        )
        if vp9 is not None:
            filters += vaapi_postprocess(vp9.hw_denoise, vp9.hw_detail)
        args.extend(_vf(filters))

    args.extend(["-c:v", encoder.value, "-low_power", "1", "-rc_mode:v", "1"])
    args.extend(
        _emit(
            encoder,
            profile,
            ("hw_quality", "hw_frames", "hw_filter", "gop", "color"),
            _hw_overrides(hw),
        )
    )
    args.extend(_output_args(job, profile, context))
    return EncodeCommand(args, env, encoder.value)


def _qsv_surface(profile: Profile, context: BuildContext) -> str:
    if context.auto_bit_depth and context.input_info is not None:
        depth = context.input_info.bit_depth or 8
        return _QSV_SURFACE_10BIT if depth >= 10 else _QSV_SURFACE_8BIT
    if profile.pix_fmt == "yuv420p10le":
        return _QSV_SURFACE_10BIT
    return _QSV_SURFACE_8BIT


def _build_vp9_qsv(
    job: VideoJob, profile: Profile, context: BuildContext, hw: HwEncodingConfig
) -> EncodeCommand:
    encoder = Encoder.VP9_QSV
    info = context.input_info
    args = _qsv_setup(context)
    if context.window is not None:
        args.extend(["-filter_hw_device", "qs"])
    args.extend(_input_args(job, context))

    vp9 = profile.vp9
    denoise, detail = (vp9.hw_denoise, vp9.hw_detail) if vp9 is not None else (0, 0)
    filters = fps_filter(profile, info) + scale_filter(profile, info)
    vpp = vpp_qsv_filter(denoise, detail, _qsv_surface(profile, context), profile)
    if vpp:
        filters.append(vpp)
    args.extend(_vf(filters))

    args.extend(["-c:v", encoder.value, "-low_power", "1"])
    args.extend(
        _emit(encoder, profile, ("hw_quality", "hw_preset", "gop"), _hw_overrides(hw))
    )
    args.extend(_output_args(job, profile, context))
    return EncodeCommand(args, dict(context.qsv_env), encoder.value)


def svtav1_params(profile: Profile) -> str:
    """Colon-separated ``-svtav1-params`` value."""
    av1 = profile.av1
    if av1 is None:
        return ""
    params = [f"tune={av1.tune}"]
    if av1.film_grain > 0:
        params.append(f"film-grain={av1.film_grain}")
        if av1.film_grain_denoise:
            params.append("film-grain-denoise=1")
    if av1.enable_overlays:
        params.append("enable-overlays=1")
    if av1.scd:
        params.append("scd=1")
    params.append(f"scm={av1.scm}")
    if not av1.enable_tf:
        params.append("enable-tf=0")
    return ":".join(params)


def _build_svtav1(
    job: VideoJob, profile: Profile, context: BuildContext
) -> EncodeCommand:
    encoder = Encoder.LIBSVTAV1
    info = context.input_info
    args = _input_args(job, context)
    args.extend(["-c:v", encoder.value])
    args.extend(_emit(encoder, profile, ("svt",)))
    params = svtav1_params(profile)
    if params:
        args.extend(["-svtav1-params", params])
    args.extend(_emit(encoder, profile, ("format", "gop", "parallelism", "color")))
    args.extend(
        _vf(
            fps_filter(profile, info, keyed=False)
            + svt_scale_filter(profile, info)
            + tonemap_filters(profile, info)
        )
    )
    args.extend(_output_args(job, profile, context))
    return EncodeCommand(args, {}, encoder.value)


def _av1_qsv_surface(pix_fmt: str) -> str | None:
    if pix_fmt == "auto":
        return None
    return _QSV_SURFACE_10BIT if pix_fmt == "yuv420p10le" else _QSV_SURFACE_8BIT


def _build_av1_qsv(
    job: VideoJob, profile: Profile, context: BuildContext, hw: HwEncodingConfig
) -> EncodeCommand:
    encoder = Encoder.AV1_QSV
    info = context.input_info
    # Heavier probing for large multi-stream inputs
    args = ["-analyzeduration", "200M", "-probesize", "200M"]
    args.extend(_qsv_setup(context))
    args.extend(["-hwaccel", "qsv", "-hwaccel_output_format", "qsv"])
    args.extend(["-filter_hw_device", "qs"])
    args.extend(_input_args(job, context))

    av1 = profile.av1
    denoise, detail = (av1.hw_denoise, av1.hw_detail) if av1 is not None else (0, 0)
    filters = fps_filter(profile, info) + scale_filter(profile, info)
    vpp = vpp_qsv_filter(denoise, detail, _av1_qsv_surface(profile.pix_fmt), profile)
    if vpp:
        filters.append(vpp)
    args.extend(_vf(filters))

    args.extend(["-c:v", encoder.value, "-rc_mode", "cqp"])
    overrides = {"hw_b_frames": hw.b_frames}
    args.extend(_emit(encoder, profile, ("hw_quality", "hw_preset"), overrides))
    args.extend(["-low_power", "1", "-b_strategy", "0"])
    args.extend(_emit(encoder, profile, ("hw_frames", "gop", "format"), overrides))
    args.extend(_output_args(job, profile, context))
    return EncodeCommand(args, dict(context.qsv_env), encoder.value)


def _build_av1_nvenc(
    job: VideoJob, profile: Profile, context: BuildContext
) -> EncodeCommand:
    encoder = Encoder.AV1_NVENC
    info = context.input_info
    args = ["-hwaccel", "cuda"] if context.window is None else []
    args.extend(_input_args(job, context))

    filters = fps_filter(profile, info) + scale_filter(profile, info)
    # NVENC ignores the color flags; zscale tags the frames instead
    color = zscale_color_filter(profile)
    if color:
        filters.append(color)
    args.extend(_vf(filters))

    args.extend(["-c:v", encoder.value, "-rc", "vbr"])
    groups = ("hw_quality", "hw_preset", "hw_frames", "gop")
    args.extend(_emit(encoder, profile, groups))
    args.extend(_output_args(job, profile, context))
    return EncodeCommand(args, {}, encoder.value)


def _build_av1_vaapi(
    job: VideoJob, profile: Profile, context: BuildContext
) -> EncodeCommand:
    encoder = Encoder.AV1_VAAPI
    info = context.input_info
    args, env = _vaapi_setup(context)
    args.extend(["-filter_hw_device", "va"])
    args.extend(_input_args(job, context))

    # Software decode, then upload; the VAAPI filters need hardware frames
    av1 = profile.av1
    filters = (
        fps_filter(profile, info)
        + scale_filter(profile, info)
        + tonemap_filters(profile, info)
        + ["format=nv12", "hwupload"]
    )
    if av1 is not None:
        filters += vaapi_postprocess(av1.hw_denoise, av1.hw_detail)
    args.extend(_vf(filters))

    args.extend(["-c:v", encoder.value, "-rc_mode:v", "CQP"])
    args.extend(_emit(encoder, profile, ("hw_quality", "gop", "color")))
    args.extend(_output_args(job, profile, context))
    return EncodeCommand(args, env, encoder.value)


def _warn_hdr_banding(profile: Profile) -> None:
    if (
        profile.pix_fmt == "yuv420p"
        and profile.colorspace == 9
        and profile.color_primaries == 9
        and profile.color_trc == 16
    ):
        logger.warning(
            "Profile %r writes HDR10 metadata with an 8-bit pixel format; "
            "expect banding, yuv420p10le is recommended",
            profile.name,
        )


def build_command(
    job: VideoJob,
    profile: Profile,
    encoder: Encoder,
    *,
    context: BuildContext | None = None,
    hw_config: HwEncodingConfig | None = None,
    pass_number: int | None = None,
    passlog: Path | None = None,
) -> EncodeCommand:
    """Build one ffmpeg invocation for an explicit encoder.

    Args:
        job: Job supplying input, output and overwrite flag.
        profile: Encode settings.
        encoder: Backend to build for.
        context: Probed facts; defaults to an empty context.
        hw_config: Hardware rate control; derived from the profile if None.
        pass_number: 1 or 2 for two-pass software VP9.
        passlog: Pass-log prefix for two-pass encodes.

    Returns:
        The built command.
    """
    context = context or BuildContext()
    hw = hw_config or HwEncodingConfig.from_profile(profile)

    clamps = clamp_profile(profile, encoder.value, _hw_overrides(hw))
    for clamp in clamps:
        logger.debug(
            "Clamping %s from %s to %s for %s",
            clamp.name,
            clamp.original,
            clamp.clamped,
            clamp.encoder,
        )

    if encoder is Encoder.LIBVPX_VP9:
        return _build_libvpx(job, profile, context, pass_number, passlog)
    if encoder is Encoder.VP9_VAAPI:
        return _build_vp9_vaapi(job, profile, context, hw)
    if encoder is Encoder.VP9_QSV:
        return _build_vp9_qsv(job, profile, context, hw)
    if encoder is Encoder.LIBSVTAV1:
        return _build_svtav1(job, profile, context)
    if encoder is Encoder.AV1_QSV:
        return _build_av1_qsv(job, profile, context, hw)
    if encoder is Encoder.AV1_NVENC:
        return _build_av1_nvenc(job, profile, context)
    return _build_av1_vaapi(job, profile, context)


def build_commands(
    job: VideoJob,
    profile: Profile,
    *,
    capabilities: CapabilityMatrix | None = None,
    context: BuildContext | None = None,
    hw_config: HwEncodingConfig | None = None,
    encoder: Encoder | None = None,
) -> list[EncodeCommand]:
    """Build the ffmpeg invocation(s) for a job.

    Software VP9 with two-pass and a target bitrate gives two commands
    (analysis pass writing to the null device, then the real encode) that
    share ``two_pass_log_prefix(job)``. Everything else gives one.

    Args:
        job: Job to encode.
        profile: Encode settings.
        capabilities: Host capabilities for encoder selection; None trusts
            the profile's request.
        context: Probed facts; defaults to an empty context.
        hw_config: Explicit hardware rate control. Passing one requests
            hardware encoding.
        encoder: Force a backend instead of selecting one.

    Returns:
        Commands to run in order.
    """
    context = context or BuildContext()
    if encoder is None:
        use_hardware = hw_config is not None or profile.use_hardware_encoding
        encoder = select_encoder(profile, capabilities, use_hardware)
    _warn_hdr_banding(profile)

    if uses_two_pass(profile, encoder, hw_config):
        passlog = two_pass_log_prefix(job)
        return [
            build_command(
                job,
                profile,
                encoder,
                context=context,
                pass_number=n,
                passlog=passlog,
            )
            for n in (1, 2)
        ]
    return [build_command(job, profile, encoder, context=context, hw_config=hw_config)]


def format_commands(commands: Iterable[EncodeCommand], program: str = "ffmpeg") -> str:
    """Render commands as shell-style text, one invocation per ``&&`` line."""
    rendered = []
    for command in commands:
        args = [f'"{a}"' if " " in a else a for a in command.args]
        rendered.append(" ".join([program, *args]))
    return "\n&& \\\n".join(rendered)
