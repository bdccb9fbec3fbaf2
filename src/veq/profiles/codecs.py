"""Codec-specific encode settings.

A profile carries exactly one of ``Vp9Config`` or ``Av1Config``. Each holds
the software encoder knobs plus the per-hardware-backend knobs for that
codec family; which of them reach ffmpeg depends on the backend selected at
build time.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any


class CodecType(Enum):
    VP9 = "vp9"
    AV1 = "av1"


@dataclass
class Vp9Config:
    """libvpx-vp9 settings plus VP9 QSV/VAAPI hardware settings."""

    # Speed
    cpu_used: int = 2
    cpu_used_pass1: int = 4
    cpu_used_pass2: int = 1
    quality_mode: str = "good"  # good, realtime, best
    vp9_profile: int = 0

    # Parallelism
    row_mt: bool = True
    tile_columns: int = 2
    tile_rows: int = 0
    frame_parallel: bool = False

    # Alt-ref frames and ARNR denoising
    auto_alt_ref: int = 1
    arnr_max_frames: int = 7
    arnr_strength: int = 3
    arnr_type: int = -1
    lag_in_frames: int = 25

    # Tuning
    enable_tpl: bool = True
    sharpness: int = -1
    noise_sensitivity: int = 0
    static_thresh: int = 0
    max_intra_rate: int = 0
    aq_mode: int = 1
    tune_content: str = "default"
    undershoot_pct: int = -1
    overshoot_pct: int = -1

    # Hardware (QSV and VAAPI)
    hw_global_quality: int = 70
    hw_loop_filter_level: int = 16
    hw_loop_filter_sharpness: int = 4
    hw_compression_level: int = 4
    hw_denoise: int = 0
    hw_detail: int = 0
    qsv_preset: int = 4
    qsv_look_ahead: bool = True
    qsv_look_ahead_depth: int = 40

    codec_type = CodecType.VP9

    def to_dict(self) -> dict[str, Any]:
        return {"codec_type": self.codec_type.value, **asdict(self)}


@dataclass
class Av1Config:
    """libsvtav1 settings plus AV1 QSV/NVENC/VAAPI hardware settings."""

    # SVT-AV1
    preset: int = 8
    tune: int = 0
    film_grain: int = 0
    film_grain_denoise: bool = False
    enable_overlays: bool = True
    scd: bool = True
    scm: int = 2
    enable_tf: bool = True
    svt_crf: int = 28

    # Hardware. hw_preset is "1".."7" for QSV, or "p1".."p7" for NVENC
    hw_preset: str = "4"
    hw_cq: int = 30
    qsv_cq: int = 65
    nvenc_cq: int = 16
    vaapi_cq: int = 65
    hw_lookahead: int = 40
    hw_tile_cols: int = 0
    hw_tile_rows: int = 0
    hw_denoise: int = 0
    hw_detail: int = 0

    codec_type = CodecType.AV1

    def to_dict(self) -> dict[str, Any]:
        return {"codec_type": self.codec_type.value, **asdict(self)}


CodecConfig = Vp9Config | Av1Config

_CODEC_CLASSES: dict[str, type[Vp9Config] | type[Av1Config]] = {
    CodecType.VP9.value: Vp9Config,
    CodecType.AV1.value: Av1Config,
}


def codec_from_dict(data: dict[str, Any]) -> CodecConfig:
    """Rebuild a codec config from ``to_dict`` output.

    Raises:
        ValueError: For a missing/unknown ``codec_type`` or unknown keys.
    """
    values = dict(data)
    tag = values.pop("codec_type", None)
    cls = _CODEC_CLASSES.get(str(tag))
    if cls is None:
        raise ValueError(f"Unknown codec_type: {tag!r} (expected 'vp9' or 'av1')")
    unknown = set(values) - {f.name for f in fields(cls)}
    if unknown:
        raise ValueError(f"Unknown {tag} codec keys: {sorted(unknown)}")
    return cls(**values)
