"""Profile validation against the selected encoder.

Validation collects every problem instead of stopping at the first, so a
profile editor or ``veq profiles validate`` can show them all at once. The
command builder never validates; it clamps or omits what it cannot use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from veq.executor.transcode.encoders import Encoder, select_encoder
from veq.params import get_encoder, params_for_encoder
from veq.profiles.models import Profile
from veq.tools.hardware import CapabilityMatrix

logger = logging.getLogger(__name__)

MAX_HW_GOP = 300
VAAPI_QUALITY_MIN = 1
VAAPI_QUALITY_MAX = 255
HW_PRESET_MIN = 1
HW_PRESET_MAX = 7

_UNAVAILABLE_MESSAGES = {
    Encoder.VP9_QSV: "VP9 QSV not available",
    Encoder.VP9_VAAPI: "VP9 VAAPI not available",
    Encoder.AV1_QSV: "AV1 QSV not available",
    Encoder.AV1_NVENC: "AV1 NVENC not available",
    Encoder.AV1_VAAPI: "AV1 VAAPI not available",
}


@dataclass(frozen=True)
class ValidationError:
    """One violated rule.

    Attributes:
        field: Profile field (or registry parameter name) at fault.
        message: Human readable explanation.
        encoder: Encoder id the profile was checked against.
    """

    field: str
    message: str
    encoder: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message} [{self.encoder}]"


def target_encoder(
    profile: Profile, capabilities: CapabilityMatrix | None = None
) -> Encoder:
    """Encoder a profile is checked against.

    A hardware profile naming a hardware encoder of its codec is checked
    against that encoder even when it is unavailable, so availability can
    be reported. Everything else is checked against what selection picks.
    """
    requested = Encoder.parse(profile.video_codec)
    if (
        profile.use_hardware_encoding
        and requested is not None
        and requested.is_hardware
        and requested.codec_type is profile.codec_type
    ):
        return requested
    return select_encoder(profile, capabilities)


def _preset_number(preset: str) -> int | None:
    try:
        return int(str(preset).strip().removeprefix("p"))
    except ValueError:
        return None


def _vaapi_quality(profile: Profile) -> int:
    vp9 = profile.vp9
    if vp9 is not None:
        return vp9.hw_global_quality
    av1 = profile.av1
    if av1 is None:
        return VAAPI_QUALITY_MIN
    return av1.vaapi_cq if av1.vaapi_cq > 0 else av1.hw_cq


def validate_profile(
    profile: Profile, capabilities: CapabilityMatrix | None = None
) -> list[ValidationError]:
    """Check a profile against its target encoder.

    Args:
        profile: Profile to check.
        capabilities: Host capabilities; None skips availability checks.

    Returns:
        All violations found, at most one per field; empty when valid.
    """
    encoder = target_encoder(profile, capabilities)
    enc = encoder.value
    errors: list[ValidationError] = []

    def add(field: str, message: str) -> None:
        if all(e.field != field for e in errors):
            errors.append(ValidationError(field, message, enc))

    requested = Encoder.parse(profile.video_codec)
    if (
        profile.use_hardware_encoding
        and requested is not None
        and requested.is_hardware
        and requested.codec_type is not profile.codec_type
    ):
        add(
            "video_codec",
            f"{requested.value} cannot encode {profile.codec_type.value.upper()}",
        )

    if (
        profile.use_hardware_encoding
        and capabilities is not None
        and encoder.is_hardware
        and not capabilities.is_available(enc)
    ):
        add("use_hardware_encoding", _UNAVAILABLE_MESSAGES[encoder])

    if encoder in (Encoder.AV1_QSV, Encoder.AV1_NVENC):
        if profile.crf > 0:
            add("crf", "CRF not supported for AV1 hardware; use hw_cq/global_quality")
        av1 = profile.av1
        preset = _preset_number(av1.hw_preset) if av1 is not None else None
        if preset is not None and not HW_PRESET_MIN <= preset <= HW_PRESET_MAX:
            if encoder is Encoder.AV1_QSV:
                add("av1_hw_preset", "QSV preset must be 1-7")
            else:
                add("av1_hw_preset", "NVENC preset must be p1-p7")

    if encoder.is_hardware and encoder.codec_type is profile.codec_type:
        if profile.av1 is not None and profile.gop_length > MAX_HW_GOP:
            add("gop_length", f"GOP too large for hardware (max {MAX_HW_GOP})")

    if encoder.is_vaapi:
        quality = _vaapi_quality(profile)
        if not VAAPI_QUALITY_MIN <= quality <= VAAPI_QUALITY_MAX:
            add("hw_global_quality", "VAAPI global_quality must be 1-255")

    if profile.two_pass and encoder.is_hardware:
        add("two_pass", "Two-pass encoding is only supported by libvpx-vp9")

    if get_encoder(enc) is not None:
        for param in params_for_encoder(enc):
            if param.range is None:
                continue
            value = param.accessor(profile)
            if value is None or param.range.contains(value):
                continue
            add(
                param.name,
                f"{param.name} must be {param.range.describe()}, got {value!r}",
            )

    if errors:
        logger.debug(
            "Profile %r has %d violation(s) for %s", profile.name, len(errors), enc
        )
    return errors
