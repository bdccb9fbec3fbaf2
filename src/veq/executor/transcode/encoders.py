"""Encoder backend selection."""

from __future__ import annotations

import logging
from enum import Enum

from veq.profiles.codecs import CodecType
from veq.profiles.models import Profile
from veq.tools.hardware import CapabilityMatrix

logger = logging.getLogger(__name__)


class Encoder(Enum):
    LIBVPX_VP9 = "libvpx-vp9"
    VP9_QSV = "vp9_qsv"
    VP9_VAAPI = "vp9_vaapi"
    LIBSVTAV1 = "libsvtav1"
    AV1_QSV = "av1_qsv"
    AV1_NVENC = "av1_nvenc"
    AV1_VAAPI = "av1_vaapi"

    @property
    def is_hardware(self) -> bool:
        return self not in (Encoder.LIBVPX_VP9, Encoder.LIBSVTAV1)

    @property
    def codec_type(self) -> CodecType:
        if self.value.startswith(("vp9", "libvpx")):
            return CodecType.VP9
        return CodecType.AV1

    @property
    def is_qsv(self) -> bool:
        return self in (Encoder.VP9_QSV, Encoder.AV1_QSV)

    @property
    def is_vaapi(self) -> bool:
        return self in (Encoder.VP9_VAAPI, Encoder.AV1_VAAPI)

    @classmethod
    def parse(cls, value: str) -> Encoder | None:
        try:
            return cls(value)
        except ValueError:
            return None


# Hardware fallback order per codec
_HW_ORDER = {
    CodecType.VP9: (Encoder.VP9_QSV, Encoder.VP9_VAAPI),
    CodecType.AV1: (Encoder.AV1_QSV, Encoder.AV1_NVENC, Encoder.AV1_VAAPI),
}
_SOFTWARE = {CodecType.VP9: Encoder.LIBVPX_VP9, CodecType.AV1: Encoder.LIBSVTAV1}


def select_encoder(
    profile: Profile,
    capabilities: CapabilityMatrix | None = None,
    use_hardware: bool | None = None,
) -> Encoder:
    """Choose the encoder backend for a profile.

    Software profiles always get the codec's software encoder. Hardware
    profiles get the requested encoder (``profile.video_codec``) when it is a
    hardware encoder of the right codec and available, otherwise the first
    available backend in QSV, NVENC, VAAPI order, otherwise software.
    Without a capability matrix the request is trusted.

    Args:
        profile: Profile to encode with.
        capabilities: Host capabilities, or None to skip availability checks.
        use_hardware: Overrides ``profile.use_hardware_encoding`` when set.

    Returns:
        The selected encoder.
    """
    codec = profile.codec_type
    software = _SOFTWARE[codec]
    hardware = profile.use_hardware_encoding if use_hardware is None else use_hardware
    if not hardware:
        return software

    order = _HW_ORDER[codec]
    requested = Encoder.parse(profile.video_codec)
    if requested not in order:
        requested = None

    if capabilities is None:
        return requested or order[0]

    if requested is not None and capabilities.is_available(requested.value):
        return requested
    for candidate in order:
        if capabilities.is_available(candidate.value):
            if requested is not None:
                logger.info(
                    "%s unavailable, using %s instead", requested.value, candidate.value
                )
            return candidate

    logger.warning(
        "No %s hardware encoder available, falling back to %s",
        codec.value.upper(),
        software.value,
    )
    return software
