"""Encode profile model.

A ``Profile`` is the complete description of one encode: output container,
rate control, resolution/fps caps, GOP, color metadata, audio layout,
Auto-VMAF settings and the codec-specific block. Hardware-only fields are
simply ignored when a software backend is selected, and vice versa; the
command builder decides what reaches ffmpeg.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

from veq.profiles.codecs import (
    Av1Config,
    CodecConfig,
    CodecType,
    Vp9Config,
    codec_from_dict,
)


class ProfileError(Exception):
    """Error loading, saving or validating a profile."""


class ProfileNotFoundError(ProfileError):
    """Profile does not exist on disk or among the built-ins."""


class RateControlMode(Enum):
    CQ = "cq"  # constant quality, no bitrate target
    CQ_CAP = "cq_cap"  # constant quality with a max bitrate
    VBR = "vbr"
    CBR = "cbr"


@dataclass
class Profile:
    """Named bundle of encode settings."""

    name: str
    suffix: str
    container: str = "webm"
    # Requested encoder id, e.g. "libvpx-vp9" or "av1_qsv"
    video_codec: str = "libvpx-vp9"

    # Output caps (0 / <=0 keep the source value)
    fps: int = 0
    scale_width: int = -2
    scale_height: int = -2

    # Rate control (bitrates in kbit/s)
    crf: int = 31
    video_target_bitrate: int = 0
    video_min_bitrate: int = 0
    video_max_bitrate: int = 0
    video_bufsize: int = 0
    two_pass: bool = False

    pix_fmt: str = "yuv420p"
    threads: int = 0
    max_workers: int = 1

    # GOP & keyframes
    gop_length: int = 240
    keyint_min: int = 0
    fixed_gop: bool = False

    # Color metadata; -1 leaves ffmpeg's default
    colorspace: int = -1
    color_primaries: int = -1
    color_trc: int = -1
    color_range: int = -1

    # Hardware
    use_hardware_encoding: bool = False
    hw_rc_mode: int = 4
    hw_b_frames: int = 0

    # Audio ("passthrough" copies the source track where the container allows)
    audio_primary_codec: str = "libopus"
    audio_primary_bitrate: int = 128
    audio_primary_downmix: bool = False
    audio_add_ac3: bool = False
    audio_ac3_bitrate: int = 448
    audio_add_stereo: bool = False
    audio_stereo_codec: str = "aac"
    audio_stereo_bitrate: int = 128

    # Auto-VMAF quality calibration
    vmaf_enabled: bool = False
    vmaf_target: float = 93.0
    vmaf_step: int = 2
    vmaf_max_attempts: int = 3
    vmaf_window_duration_sec: int = 10
    vmaf_analysis_budget_sec: int = 60
    vmaf_n_subsample: int = 30

    # Extra ffmpeg arguments, shell-split before the output path
    additional_args: str = ""

    codec: CodecConfig = field(default_factory=Vp9Config)

    @property
    def codec_type(self) -> CodecType:
        return self.codec.codec_type

    @property
    def vp9(self) -> Vp9Config | None:
        return self.codec if isinstance(self.codec, Vp9Config) else None

    @property
    def av1(self) -> Av1Config | None:
        return self.codec if isinstance(self.codec, Av1Config) else None

    @property
    def rate_control_mode(self) -> RateControlMode:
        if self.video_target_bitrate > 0:
            if (
                self.video_min_bitrate > 0
                and self.video_min_bitrate == self.video_target_bitrate
                and self.video_max_bitrate == self.video_target_bitrate
            ):
                return RateControlMode.CBR
            return RateControlMode.VBR
        if self.video_max_bitrate > 0:
            return RateControlMode.CQ_CAP
        return RateControlMode.CQ

    def with_quality(self, quality: int) -> Profile:
        """Copy of this profile with a calibrated quality value applied.

        Software encodes take it as CRF. Hardware VP9 takes it as the global
        quality; hardware AV1 takes it as the CQ for every backend.
        """
        calibrated = self.copy()
        if not self.use_hardware_encoding:
            calibrated.crf = quality
            if isinstance(calibrated.codec, Av1Config):
                calibrated.codec.svt_crf = quality
        elif isinstance(calibrated.codec, Vp9Config):
            calibrated.codec.hw_global_quality = quality
        else:
            av1 = calibrated.codec
            av1.hw_cq = quality
            av1.qsv_cq = quality
            av1.nvenc_cq = quality
            av1.vaapi_cq = quality
        return calibrated

    def copy(self) -> Profile:
        return replace(self, codec=copy.deepcopy(self.codec))

    def to_dict(self) -> dict[str, Any]:
        data = {
            f.name: getattr(self, f.name) for f in fields(self) if f.name != "codec"
        }
        data["codec"] = self.codec.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        """Build a profile from ``to_dict`` output.

        Raises:
            ProfileError: On unknown keys or a malformed codec block.
        """
        values = dict(data)
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ProfileError(
                f"Unknown keys in profile {values.get('name', '?')!r}: "
                f"{sorted(unknown)}"
            )
        codec_data = values.pop("codec", None)
        try:
            codec = (
                codec_from_dict(codec_data) if codec_data is not None else Vp9Config()
            )
            return cls(codec=codec, **values)
        except (TypeError, ValueError) as e:
            name = values.get("name", "?")
            raise ProfileError(f"Invalid profile {name!r}: {e}") from e


@dataclass(frozen=True)
class HwEncodingConfig:
    """VAAPI/QSV rate control settings resolved for one encode.

    rc_mode: 1=CQP, 2=CBR, 3=VBR, 4=ICQ. global_quality is passed to ffmpeg
    unchanged (1-255, lower is better).
    """

    rc_mode: int = 4
    global_quality: int = 70
    b_frames: int = 0
    loop_filter_level: int = 16
    loop_filter_sharpness: int = 4
    compression_level: int = 4

    @classmethod
    def from_profile(cls, profile: Profile) -> HwEncodingConfig:
        vp9 = profile.vp9
        if vp9 is not None:
            return cls(
                rc_mode=profile.hw_rc_mode,
                global_quality=vp9.hw_global_quality,
                b_frames=profile.hw_b_frames,
                loop_filter_level=vp9.hw_loop_filter_level,
                loop_filter_sharpness=vp9.hw_loop_filter_sharpness,
                compression_level=vp9.hw_compression_level,
            )
        return cls(
            rc_mode=profile.hw_rc_mode,
            global_quality=profile.codec.hw_cq,
            b_frames=profile.hw_b_frames,
        )
