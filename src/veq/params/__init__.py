"""Encoder parameter registry."""

from veq.params.registry import (
    ACCESSORS,
    AV1_NVENC,
    AV1_QSV,
    AV1_VAAPI,
    ENCODERS,
    LIBSVTAV1,
    LIBVPX_VP9,
    PARAMS,
    VP9_QSV,
    VP9_VAAPI,
    av1_qsv_pix_fmt,
    clamp_profile,
    clamp_value,
    emit_args,
    get_encoder,
    get_param,
    is_supported,
    nvenc_preset,
    params_for_encoder,
    qsv_preset_name,
    should_emit,
)
from veq.params.types import (
    Condition,
    EncoderDef,
    EncoderParam,
    EncoderType,
    HardwareApi,
    ParamClamp,
    ParamDef,
    Range,
    Support,
)

__all__ = [
    "ACCESSORS",
    "AV1_NVENC",
    "AV1_QSV",
    "AV1_VAAPI",
    "ENCODERS",
    "LIBSVTAV1",
    "LIBVPX_VP9",
    "PARAMS",
    "VP9_QSV",
    "VP9_VAAPI",
    "Condition",
    "EncoderDef",
    "EncoderParam",
    "EncoderType",
    "HardwareApi",
    "ParamClamp",
    "ParamDef",
    "Range",
    "Support",
    "av1_qsv_pix_fmt",
    "clamp_profile",
    "clamp_value",
    "emit_args",
    "get_encoder",
    "get_param",
    "is_supported",
    "nvenc_preset",
    "params_for_encoder",
    "qsv_preset_name",
    "should_emit",
]
