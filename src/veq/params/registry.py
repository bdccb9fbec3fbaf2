"""Encoder parameter registry.

Single source of truth for which logical profile parameters each ffmpeg
encoder accepts, under which flag, and when the flag is written. The command
builder emits registry-driven parameters group by group, so supporting a new
encoder means adding one entry per parameter here rather than touching every
builder.

Parameters whose value depends on more than one profile field (the VP9
``-b:v`` fallback to maxrate, the AV1 per-backend CQ fallbacks) use derived
accessors. Everything that is not a plain ``flag value`` pair (filter chains,
``-svtav1-params``, audio) stays in the builder.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from veq.params.types import (
    Accessor,
    Condition,
    EncoderDef,
    EncoderParam,
    EncoderType,
    HardwareApi,
    ParamClamp,
    ParamDef,
    Range,
    Support,
    unsupported,
)
from veq.profiles.codecs import CodecType

if TYPE_CHECKING:
    from veq.profiles.models import Profile

LIBVPX_VP9 = "libvpx-vp9"
VP9_QSV = "vp9_qsv"
VP9_VAAPI = "vp9_vaapi"
LIBSVTAV1 = "libsvtav1"
AV1_QSV = "av1_qsv"
AV1_NVENC = "av1_nvenc"
AV1_VAAPI = "av1_vaapi"

ENCODERS: tuple[EncoderDef, ...] = (
    EncoderDef(LIBVPX_VP9, CodecType.VP9, EncoderType.SOFTWARE),
    EncoderDef(VP9_QSV, CodecType.VP9, EncoderType.HARDWARE, HardwareApi.QSV),
    EncoderDef(VP9_VAAPI, CodecType.VP9, EncoderType.HARDWARE, HardwareApi.VAAPI),
    EncoderDef(LIBSVTAV1, CodecType.AV1, EncoderType.SOFTWARE),
    EncoderDef(AV1_QSV, CodecType.AV1, EncoderType.HARDWARE, HardwareApi.QSV),
    EncoderDef(AV1_NVENC, CodecType.AV1, EncoderType.HARDWARE, HardwareApi.NVENC),
    EncoderDef(AV1_VAAPI, CodecType.AV1, EncoderType.HARDWARE, HardwareApi.VAAPI),
)

_ENCODER_IDS = tuple(e.id for e in ENCODERS)

QSV_PRESET_NAMES = {
    1: "veryslow",
    2: "slower",
    3: "slow",
    4: "medium",
    5: "fast",
    6: "faster",
    7: "veryfast",
}

# Hardware GOP cap; longer GOPs stall the first frames on Intel Arc.
HW_GOP_CAP = Range(1, 240)


def qsv_preset_name(preset: Any) -> str:
    """QSV preset name for a 1 (best) .. 7 (fastest) preset number."""
    try:
        return QSV_PRESET_NAMES.get(int(preset), "medium")
    except (TypeError, ValueError):
        return "medium"


def av1_qsv_preset(preset: str) -> str:
    """Numeric presets map to QSV names, anything else passes through."""
    return qsv_preset_name(preset) if str(preset).isdigit() else str(preset)


def nvenc_preset(preset: str) -> str:
    """NVENC preset: ``pN`` passes through, numbers invert (1 -> p7, 7 -> p1)."""
    preset = str(preset)
    if preset.startswith("p"):
        return preset
    try:
        value = int(preset or 4)
    except ValueError:
        value = 4
    return f"p{8 - value}"


def av1_qsv_pix_fmt(pix_fmt: str) -> str:
    return "p010le" if pix_fmt == "yuv420p10le" else "nv12"


def _field(name: str) -> Accessor:
    return lambda p: getattr(p, name)


def _vp9(name: str) -> Accessor:
    return lambda p: getattr(p.vp9, name) if p.vp9 is not None else None


def _av1(name: str) -> Accessor:
    return lambda p: getattr(p.av1, name) if p.av1 is not None else None


def _vp9_bitrate(p: Profile) -> int:
    # libvpx needs a non-zero -b:v for CQ with a max bitrate cap
    if p.video_target_bitrate == 0 and p.video_max_bitrate > 0:
        return p.video_max_bitrate
    return p.video_target_bitrate


def _pix_fmt(p: Profile) -> str:
    return "" if p.pix_fmt == "auto" else p.pix_fmt


def _tune_content(p: Profile) -> str | None:
    if p.vp9 is None:
        return None
    return "" if p.vp9.tune_content == "default" else p.vp9.tune_content


def _vp9_look_ahead_depth(p: Profile) -> int | None:
    if p.vp9 is None:
        return None
    return p.vp9.qsv_look_ahead_depth if p.vp9.qsv_look_ahead else 0


def _svt_crf(p: Profile) -> int | None:
    if p.av1 is None:
        return None
    return p.av1.svt_crf if p.av1.svt_crf > 0 else p.crf


def _av1_cq(name: str) -> Accessor:
    def get(p: Profile) -> int | None:
        if p.av1 is None:
            return None
        value = getattr(p.av1, name)
        return value if value > 0 else p.av1.hw_cq

    return get


def _param(
    name: str,
    group: str,
    description: str,
    accessor: Accessor,
    encoders: dict[str, EncoderParam],
    value_format: str = "{}",
    range: Range | None = None,
) -> ParamDef:
    """ParamDef with an explicit entry for every known encoder."""
    complete = {eid: encoders.get(eid, unsupported()) for eid in _ENCODER_IDS}
    return ParamDef(name, group, description, accessor, complete, value_format, range)


_KBPS = "{}k"
_ON = "1"

PARAMS: tuple[ParamDef, ...] = (
    # Software rate control
    _param(
        "video_target_bitrate",
        "bitrate",
        "Target video bitrate in kbit/s (0 = constant quality)",
        _vp9_bitrate,
        {LIBVPX_VP9: EncoderParam("-b:v")},
        value_format=_KBPS,
    ),
    _param(
        "crf",
        "bitrate",
        "Constant rate factor (lower is better)",
        _field("crf"),
        {
            LIBVPX_VP9: EncoderParam("-crf"),
            LIBSVTAV1: unsupported("libsvtav1 takes svt_crf, falling back to crf"),
            AV1_QSV: unsupported("constant QP only, use qsv_cq"),
            AV1_NVENC: unsupported("CQ only, use nvenc_cq"),
            AV1_VAAPI: unsupported("CQP only, use vaapi_cq"),
        },
        range=Range(0, 63),
    ),
    _param(
        "video_min_bitrate",
        "bitrate",
        "Minimum bitrate in kbit/s",
        _field("video_min_bitrate"),
        {LIBVPX_VP9: EncoderParam("-minrate", condition=Condition.NON_ZERO)},
        value_format=_KBPS,
    ),
    _param(
        "video_max_bitrate",
        "bitrate",
        "Maximum bitrate in kbit/s",
        _field("video_max_bitrate"),
        {LIBVPX_VP9: EncoderParam("-maxrate", condition=Condition.NON_ZERO)},
        value_format=_KBPS,
    ),
    _param(
        "video_bufsize",
        "bitrate",
        "Rate control buffer size in kbit",
        _field("video_bufsize"),
        {LIBVPX_VP9: EncoderParam("-bufsize", condition=Condition.NON_ZERO)},
        value_format=_KBPS,
    ),
    _param(
        "undershoot_pct",
        "bitrate",
        "Allowed undershoot of the target bitrate in percent",
        _vp9("undershoot_pct"),
        {LIBVPX_VP9: EncoderParam("-undershoot-pct", condition=Condition.NON_NEGATIVE)},
        range=Range(-1, 100),
    ),
    _param(
        "overshoot_pct",
        "bitrate",
        "Allowed overshoot of the target bitrate in percent",
        _vp9("overshoot_pct"),
        {LIBVPX_VP9: EncoderParam("-overshoot-pct", condition=Condition.NON_NEGATIVE)},
        range=Range(-1, 1000),
    ),
    # Speed
    _param(
        "quality_mode",
        "speed",
        "libvpx deadline mode",
        _vp9("quality_mode"),
        {LIBVPX_VP9: EncoderParam("-quality")},
        range=Range(choices=("good", "realtime", "best")),
    ),
    _param(
        "cpu_used",
        "speed",
        "libvpx speed/quality trade-off; two-pass uses the per-pass values",
        _vp9("cpu_used"),
        {LIBVPX_VP9: EncoderParam("-cpu-used")},
        range=Range(-8, 8),
    ),
    # Format
    _param(
        "vp9_profile",
        "format",
        "VP9 bitstream profile",
        _vp9("vp9_profile"),
        {LIBVPX_VP9: EncoderParam("-profile:v")},
        range=Range(0, 3),
    ),
    _param(
        "pix_fmt",
        "format",
        "Output pixel format ('auto' keeps the encoder default)",
        _pix_fmt,
        {
            LIBVPX_VP9: EncoderParam("-pix_fmt", condition=Condition.NON_EMPTY),
            LIBSVTAV1: EncoderParam("-pix_fmt", condition=Condition.NON_EMPTY),
            AV1_QSV: EncoderParam(
                "-pix_fmt",
                support=Support.ALT_FLAG,
                condition=Condition.NON_EMPTY,
                convert=av1_qsv_pix_fmt,
                note="mapped to the QSV surface format (p010le or nv12)",
            ),
            VP9_QSV: unsupported("format set through vpp_qsv"),
            VP9_VAAPI: unsupported("frames uploaded as nv12"),
            AV1_VAAPI: unsupported("frames uploaded as nv12"),
        },
    ),
    # Parallelism
    _param(
        "row_mt",
        "parallelism",
        "Row-based multithreading",
        _vp9("row_mt"),
        {LIBVPX_VP9: EncoderParam("-row-mt", condition=Condition.BOOL_TRUE)},
        value_format=_ON,
    ),
    _param(
        "tile_columns",
        "parallelism",
        "log2 of tile columns",
        _vp9("tile_columns"),
        {
            LIBVPX_VP9: EncoderParam("-tile-columns", condition=Condition.NON_NEGATIVE),
            VP9_QSV: unsupported("no tile control"),
            VP9_VAAPI: unsupported("no tile control"),
        },
        range=Range(-1, 6),
    ),
    _param(
        "tile_rows",
        "parallelism",
        "log2 of tile rows",
        _vp9("tile_rows"),
        {
            LIBVPX_VP9: EncoderParam("-tile-rows", condition=Condition.NON_NEGATIVE),
            VP9_QSV: unsupported("no tile control"),
            VP9_VAAPI: unsupported("no tile control"),
        },
        range=Range(-1, 2),
    ),
    _param(
        "threads",
        "parallelism",
        "Encoder threads (0 = automatic)",
        _field("threads"),
        {
            LIBVPX_VP9: EncoderParam("-threads", condition=Condition.NON_ZERO),
            LIBSVTAV1: EncoderParam("-threads", condition=Condition.NON_ZERO),
        },
        range=Range(0, 64),
    ),
    _param(
        "frame_parallel",
        "parallelism",
        "Frame parallel decodability",
        _vp9("frame_parallel"),
        {LIBVPX_VP9: EncoderParam("-frame-parallel", condition=Condition.BOOL_TRUE)},
        value_format=_ON,
    ),
    # GOP
    _param(
        "gop_length",
        "gop",
        "Maximum keyframe interval in frames",
        _field("gop_length"),
        {
            LIBVPX_VP9: EncoderParam("-g"),
            VP9_QSV: EncoderParam("-g:v", Support.ALT_FLAG, clamp=HW_GOP_CAP),
            VP9_VAAPI: EncoderParam("-g:v", Support.ALT_FLAG, clamp=HW_GOP_CAP),
            LIBSVTAV1: EncoderParam("-g:v", Support.ALT_FLAG),
            AV1_QSV: EncoderParam("-g:v", Support.ALT_FLAG, clamp=HW_GOP_CAP),
            AV1_NVENC: EncoderParam("-g:v", Support.ALT_FLAG),
            AV1_VAAPI: EncoderParam("-g:v", Support.ALT_FLAG),
        },
        range=Range(1, 9999),
    ),
    _param(
        "keyint_min",
        "gop",
        "Minimum keyframe interval in frames",
        _field("keyint_min"),
        {LIBVPX_VP9: EncoderParam("-keyint_min", condition=Condition.NON_ZERO)},
        range=Range(0, 9999),
    ),
    _param(
        "fixed_gop",
        "gop",
        "Disable scene-cut keyframes",
        _field("fixed_gop"),
        {LIBVPX_VP9: EncoderParam("-sc_threshold", condition=Condition.BOOL_TRUE)},
        value_format="0",
    ),
    # libvpx tuning
    _param(
        "lag_in_frames",
        "tuning",
        "Look-ahead frames",
        _vp9("lag_in_frames"),
        {
            LIBVPX_VP9: EncoderParam("-lag-in-frames"),
            VP9_QSV: unsupported("use qsv_look_ahead_depth"),
            VP9_VAAPI: unsupported(),
        },
        range=Range(0, 25),
    ),
    _param(
        "auto_alt_ref",
        "tuning",
        "Alternate reference frames",
        _vp9("auto_alt_ref"),
        {LIBVPX_VP9: EncoderParam("-auto-alt-ref", condition=Condition.NON_ZERO)},
        range=Range(0, 6),
    ),
    _param(
        "aq_mode",
        "tuning",
        "Adaptive quantization mode (-1 = encoder default)",
        _vp9("aq_mode"),
        {LIBVPX_VP9: EncoderParam("-aq-mode", condition=Condition.NON_NEGATIVE)},
        range=Range(-1, 6),
    ),
    _param(
        "arnr_max_frames",
        "tuning",
        "Alt-ref noise reduction frame count",
        _vp9("arnr_max_frames"),
        {
            LIBVPX_VP9: EncoderParam("-arnr-maxframes", condition=Condition.NON_ZERO),
            VP9_QSV: unsupported("no alt-ref denoising"),
            VP9_VAAPI: unsupported("no alt-ref denoising"),
        },
        range=Range(0, 15),
    ),
    _param(
        "arnr_strength",
        "tuning",
        "Alt-ref noise reduction strength",
        _vp9("arnr_strength"),
        {
            LIBVPX_VP9: EncoderParam("-arnr-strength", condition=Condition.NON_ZERO),
            VP9_QSV: unsupported("no alt-ref denoising"),
            VP9_VAAPI: unsupported("no alt-ref denoising"),
        },
        range=Range(0, 6),
    ),
    _param(
        "arnr_type",
        "tuning",
        "Alt-ref noise reduction filter type (-1 = default)",
        _vp9("arnr_type"),
        {LIBVPX_VP9: EncoderParam("-arnr-type", condition=Condition.NON_NEGATIVE)},
        range=Range(-1, 3),
    ),
    _param(
        "enable_tpl",
        "tuning",
        "Temporal dependency model",
        _vp9("enable_tpl"),
        {LIBVPX_VP9: EncoderParam("-enable-tpl", condition=Condition.BOOL_TRUE)},
        value_format=_ON,
    ),
    _param(
        "sharpness",
        "tuning",
        "Loop filter sharpness (-1 = default)",
        _vp9("sharpness"),
        {LIBVPX_VP9: EncoderParam("-sharpness", condition=Condition.NON_NEGATIVE)},
        range=Range(-1, 7),
    ),
    _param(
        "noise_sensitivity",
        "tuning",
        "Temporal denoiser sensitivity",
        _vp9("noise_sensitivity"),
        {LIBVPX_VP9: EncoderParam("-noise-sensitivity", condition=Condition.NON_ZERO)},
        range=Range(0, 6),
    ),
    _param(
        "static_thresh",
        "tuning",
        "Motion detection threshold",
        _vp9("static_thresh"),
        {LIBVPX_VP9: EncoderParam("-static-thresh", condition=Condition.NON_ZERO)},
    ),
    _param(
        "max_intra_rate",
        "tuning",
        "Maximum intra frame bitrate in percent of the average",
        _vp9("max_intra_rate"),
        {LIBVPX_VP9: EncoderParam("-max-intra-rate", condition=Condition.NON_ZERO)},
    ),
    _param(
        "tune_content",
        "tuning",
        "Content type hint",
        _tune_content,
        {LIBVPX_VP9: EncoderParam("-tune-content", condition=Condition.NON_EMPTY)},
        range=Range(choices=("", "screen", "film")),
    ),
    # Color metadata
    *(
        _param(
            name,
            "color",
            description,
            _field(name),
            {
                LIBVPX_VP9: EncoderParam(flag, condition=Condition.NON_NEGATIVE),
                VP9_VAAPI: EncoderParam(flag, condition=Condition.NON_NEGATIVE),
                LIBSVTAV1: EncoderParam(flag, condition=Condition.NON_NEGATIVE),
                AV1_VAAPI: EncoderParam(flag, condition=Condition.NON_NEGATIVE),
                VP9_QSV: unsupported("set through vpp_qsv out_color_* options"),
                AV1_QSV: unsupported("set through vpp_qsv out_color_* options"),
                AV1_NVENC: unsupported("converted with a zscale filter"),
            },
            range=Range(-1, 18),
        )
        for name, flag, description in (
            ("colorspace", "-colorspace:v", "Matrix coefficients (-1 = auto)"),
            ("color_primaries", "-color_primaries:v", "Color primaries (-1 = auto)"),
            ("color_trc", "-color_trc:v", "Transfer characteristics (-1 = auto)"),
            ("color_range", "-color_range:v", "Color range (-1 = auto)"),
        )
    ),
    # Hardware quality
    _param(
        "hw_global_quality",
        "hw_quality",
        "VP9 hardware constant quality (1-255, lower is better)",
        _vp9("hw_global_quality"),
        {
            VP9_VAAPI: EncoderParam("-global_quality:v"),
            VP9_QSV: EncoderParam(
                "-q:v",
                Support.ALT_FLAG,
                note="-q:v forces CQP; global_quality selects the broken ICQ mode",
            ),
        },
        range=Range(1, 255),
    ),
    _param(
        "qsv_cq",
        "hw_quality",
        "AV1 QSV constant QP (0 falls back to hw_cq)",
        _av1_cq("qsv_cq"),
        {AV1_QSV: EncoderParam("-q:v")},
        range=Range(1, 255),
    ),
    _param(
        "nvenc_cq",
        "hw_quality",
        "AV1 NVENC constant quality (0 falls back to hw_cq)",
        _av1_cq("nvenc_cq"),
        {AV1_NVENC: EncoderParam("-cq", clamp=Range(0, 63))},
    ),
    _param(
        "vaapi_cq",
        "hw_quality",
        "AV1 VAAPI global quality (0 falls back to hw_cq)",
        _av1_cq("vaapi_cq"),
        {AV1_VAAPI: EncoderParam("-global_quality:v", clamp=Range(1, 255))},
    ),
    # Hardware presets
    _param(
        "qsv_preset",
        "hw_preset",
        "VP9 QSV preset, 1 (best) to 7 (fastest)",
        _vp9("qsv_preset"),
        {VP9_QSV: EncoderParam("-preset", convert=qsv_preset_name)},
        range=Range(1, 7),
    ),
    _param(
        "qsv_look_ahead_depth",
        "hw_preset",
        "VP9 QSV look-ahead depth (needs qsv_look_ahead)",
        _vp9_look_ahead_depth,
        {
            VP9_QSV: EncoderParam(
                "-look_ahead_depth",
                condition=Condition.NON_ZERO,
                lead=("-look_ahead", "1"),
            )
        },
        range=Range(0, 100),
    ),
    _param(
        "av1_hw_preset",
        "hw_preset",
        "AV1 hardware preset: 1-7, or p1-p7 for NVENC",
        _av1("hw_preset"),
        {
            AV1_QSV: EncoderParam("-preset", convert=av1_qsv_preset),
            AV1_NVENC: EncoderParam(
                "-preset",
                convert=nvenc_preset,
                note="numeric presets invert: 1 -> p7, 7 -> p1",
            ),
        },
    ),
    # Hardware frame structure
    _param(
        "hw_b_frames",
        "hw_frames",
        "Hardware B-frames",
        _field("hw_b_frames"),
        {
            VP9_VAAPI: EncoderParam(
                "-bf:v",
                condition=Condition.NON_ZERO,
                trail=("-bsf:v", "vp9_raw_reorder,vp9_superframe"),
            ),
            AV1_QSV: EncoderParam("-bf", Support.ALT_FLAG),
        },
        range=Range(0, 4),
    ),
    _param(
        "hw_lookahead",
        "hw_frames",
        "AV1 hardware look-ahead frames",
        _av1("hw_lookahead"),
        {
            AV1_QSV: EncoderParam(
                "-look_ahead_depth",
                Support.ALT_FLAG,
                condition=Condition.NON_ZERO,
                clamp=Range(0, 100),
                lead=("-look_ahead", "1"),
            ),
            AV1_NVENC: EncoderParam("-rc-lookahead", condition=Condition.NON_ZERO),
        },
    ),
    _param(
        "hw_tile_cols",
        "hw_frames",
        "AV1 QSV tile columns",
        _av1("hw_tile_cols"),
        {AV1_QSV: EncoderParam("-tile_cols", condition=Condition.NON_ZERO)},
    ),
    _param(
        "hw_tile_rows",
        "hw_frames",
        "AV1 QSV tile rows",
        _av1("hw_tile_rows"),
        {AV1_QSV: EncoderParam("-tile_rows", condition=Condition.NON_ZERO)},
    ),
    # VP9 VAAPI loop filter
    _param(
        "hw_loop_filter_level",
        "hw_filter",
        "VAAPI loop filter level",
        _vp9("hw_loop_filter_level"),
        {VP9_VAAPI: EncoderParam("-loop_filter_level:v")},
        range=Range(0, 63),
    ),
    _param(
        "hw_loop_filter_sharpness",
        "hw_filter",
        "VAAPI loop filter sharpness",
        _vp9("hw_loop_filter_sharpness"),
        {VP9_VAAPI: EncoderParam("-loop_filter_sharpness:v")},
        range=Range(0, 15),
    ),
    _param(
        "hw_compression_level",
        "hw_filter",
        "VAAPI speed/compression trade-off (0 = best)",
        _vp9("hw_compression_level"),
        {VP9_VAAPI: EncoderParam("-compression_level:v")},
        range=Range(0, 7),
    ),
    # SVT-AV1
    _param(
        "svt_crf",
        "svt",
        "SVT-AV1 CRF (0 falls back to crf)",
        _svt_crf,
        {LIBSVTAV1: EncoderParam("-crf")},
        range=Range(0, 63),
    ),
    _param(
        "svt_preset",
        "svt",
        "SVT-AV1 preset, 0 (best) to 13 (fastest)",
        _av1("preset"),
        {LIBSVTAV1: EncoderParam("-preset")},
        range=Range(0, 13),
    ),
)

ACCESSORS: dict[str, Accessor] = {p.name: p.accessor for p in PARAMS}

_PARAMS_BY_NAME: dict[str, ParamDef] = {p.name: p for p in PARAMS}
_ENCODERS_BY_ID: dict[str, EncoderDef] = {e.id: e for e in ENCODERS}


def get_param(name: str) -> ParamDef | None:
    return _PARAMS_BY_NAME.get(name)


def get_encoder(encoder_id: str) -> EncoderDef | None:
    return _ENCODERS_BY_ID.get(encoder_id)


def params_for_encoder(encoder_id: str) -> Iterator[ParamDef]:
    """Parameters the encoder supports, in table order."""
    return (p for p in PARAMS if p.is_supported_by(encoder_id))


def is_supported(name: str, encoder_id: str) -> bool:
    param = _PARAMS_BY_NAME.get(name)
    return param is not None and param.is_supported_by(encoder_id)


def clamp_value(value: Any, bounds: Range | None) -> Any:
    """Clamp a numeric value to inclusive bounds; other values pass through."""
    if bounds is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if bounds.minimum is not None and value < bounds.minimum:
        return bounds.minimum
    if bounds.maximum is not None and value > bounds.maximum:
        return bounds.maximum
    return value


def _value(
    param: ParamDef, profile: Profile, overrides: Mapping[str, Any] | None
) -> Any:
    if overrides and param.name in overrides:
        return overrides[param.name]
    return param.accessor(profile)


def should_emit(
    param: ParamDef,
    encoder_id: str,
    profile: Profile,
    overrides: Mapping[str, Any] | None = None,
) -> bool:
    """True when the encoder supports the parameter and its condition holds."""
    entry = param.for_encoder(encoder_id)
    if entry is None or not entry.supported:
        return False
    return entry.condition.holds(_value(param, profile, overrides))


def emit_args(
    encoder_id: str,
    profile: Profile,
    group: str,
    overrides: Mapping[str, Any] | None = None,
) -> list[str]:
    """Command-line arguments for one parameter group, in table order.

    Args:
        encoder_id: Selected encoder.
        profile: Profile supplying values.
        group: Parameter group to emit.
        overrides: Values that replace the accessor result by parameter name,
            e.g. the per-pass ``cpu_used``.

    Returns:
        Flat ``[flag, value, ...]`` list.
    """
    args: list[str] = []
    for param in PARAMS:
        if param.group != group:
            continue
        if not should_emit(param, encoder_id, profile, overrides):
            continue
        entry = param.encoders[encoder_id]
        value = clamp_value(_value(param, profile, overrides), entry.clamp)
        if entry.convert is not None:
            value = entry.convert(value)
        args.extend(entry.lead)
        args.extend([entry.flag, param.value_format.format(value)])
        args.extend(entry.trail)
    return args


def clamp_profile(
    profile: Profile,
    encoder_id: str,
    overrides: Mapping[str, Any] | None = None,
) -> list[ParamClamp]:
    """Values the builder will clamp for this encoder."""
    clamps: list[ParamClamp] = []
    for param in params_for_encoder(encoder_id):
        entry = param.encoders[encoder_id]
        if entry.clamp is None:
            continue
        original = _value(param, profile, overrides)
        clamped = clamp_value(original, entry.clamp)
        if clamped != original:
            clamps.append(ParamClamp(param.name, encoder_id, original, clamped))
    return clamps
