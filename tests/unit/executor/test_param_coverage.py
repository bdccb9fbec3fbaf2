"""Every registry parameter reaches the backends that support it, and only those.

Each builder picks its parameter groups by hand, so these tests walk the
registry instead: with a profile in which every supported parameter's emit
condition holds, the command for each encoder must carry the parameter under
that encoder's flag, and flags of parameters an encoder does not support must
not leak into its command.
"""

from pathlib import Path

import pytest

from veq.domain.models import VideoJob
from veq.executor.transcode import BuildContext, Encoder, build_commands
from veq.params import ACCESSORS, ENCODERS, PARAMS, emit_args, params_for_encoder
from veq.profiles import Profile
from veq.profiles.codecs import Av1Config, CodecType, Vp9Config

ENCODER_IDS = [e.id for e in ENCODERS]

# (software, hardware) encoders of the same codec family
BACKEND_PAIRS = [
    (sw.id, hw.id)
    for sw in ENCODERS
    for hw in ENCODERS
    if not sw.is_hardware and hw.is_hardware and sw.codec is hw.codec
]


def _vp9_profile() -> Profile:
    return Profile(
        name="vp9-everything",
        suffix="all",
        video_target_bitrate=2000,
        video_min_bitrate=1000,
        video_max_bitrate=3000,
        video_bufsize=4000,
        threads=4,
        keyint_min=12,
        fixed_gop=True,
        colorspace=1,
        color_primaries=1,
        color_trc=1,
        color_range=1,
        hw_b_frames=2,
        codec=Vp9Config(
            undershoot_pct=50,
            overshoot_pct=50,
            frame_parallel=True,
            arnr_type=1,
            sharpness=2,
            noise_sensitivity=1,
            static_thresh=100,
            max_intra_rate=300,
            tune_content="film",
        ),
    )


def _av1_profile() -> Profile:
    return Profile(
        name="av1-everything",
        suffix="all",
        container="mkv",
        video_codec="libsvtav1",
        pix_fmt="yuv420p10le",
        threads=4,
        colorspace=1,
        color_primaries=1,
        color_trc=1,
        color_range=1,
        hw_b_frames=2,
        codec=Av1Config(hw_tile_cols=2, hw_tile_rows=1),
    )


PROFILES = {CodecType.VP9: _vp9_profile, CodecType.AV1: _av1_profile}


@pytest.fixture
def job() -> VideoJob:
    return VideoJob(
        input_path=Path("/videos/movie.mkv"),
        output_path=Path("/encoded/movie.mkv"),
        profile="everything",
    )


def _profile_for(encoder_id: str) -> Profile:
    return PROFILES[Encoder(encoder_id).codec_type]()


def _args(job: VideoJob, encoder_id: str) -> list[str]:
    commands = build_commands(
        job,
        _profile_for(encoder_id),
        context=BuildContext(),
        encoder=Encoder(encoder_id),
    )
    assert len(commands) == 1
    return commands[0].args


def _flags(encoder_id: str, params) -> set[str]:
    flags: set[str] = set()
    for param in params:
        entry = param.encoders[encoder_id]
        tokens = [entry.flag, *entry.lead, *entry.trail]
        flags.update(t for t in tokens if t is not None and t.startswith("-"))
    return flags


def _contains(args: list[str], fragment: list[str]) -> bool:
    size = len(fragment)
    return any(args[i : i + size] == fragment for i in range(len(args) - size + 1))


@pytest.mark.parametrize("encoder_id", ENCODER_IDS)
def test_profile_triggers_every_supported_param(encoder_id):
    """The fixture profiles satisfy every supported emit condition."""
    profile = _profile_for(encoder_id)
    for param in params_for_encoder(encoder_id):
        entry = param.encoders[encoder_id]
        value = ACCESSORS[param.name](profile)
        assert entry.condition.holds(value), f"{param.name}={value!r}"


@pytest.mark.parametrize("encoder_id", ENCODER_IDS)
def test_supported_params_emitted(job, encoder_id):
    """Each supported parameter appears under the encoder's own flag."""
    profile = _profile_for(encoder_id)
    args = _args(job, encoder_id)

    for param in params_for_encoder(encoder_id):
        flag = param.encoders[encoder_id].flag
        assert flag in args, f"{param.name} ({flag}) missing for {encoder_id}"
    groups = {param.group for param in params_for_encoder(encoder_id)}
    for group in sorted(groups):
        fragment = emit_args(encoder_id, profile, group)
        assert fragment
        assert _contains(args, fragment), f"group {group} missing for {encoder_id}"


@pytest.mark.parametrize(("software", "hardware"), BACKEND_PAIRS)
def test_software_only_flags_absent_from_hardware(job, software, hardware):
    """Parameters only the software encoder takes never reach hardware."""
    software_only = [
        p
        for p in PARAMS
        if p.is_supported_by(software) and not p.is_supported_by(hardware)
    ]
    forbidden = _flags(software, software_only) - _flags(
        hardware, params_for_encoder(hardware)
    )
    assert forbidden

    leaked = forbidden.intersection(_args(job, hardware))
    assert not leaked, f"{sorted(leaked)} in {hardware} command"


@pytest.mark.parametrize(("software", "hardware"), BACKEND_PAIRS)
def test_hardware_only_flags_absent_from_software(job, software, hardware):
    """Parameters only the hardware encoder takes never reach software."""
    hardware_only = [
        p
        for p in PARAMS
        if p.is_supported_by(hardware) and not p.is_supported_by(software)
    ]
    forbidden = _flags(hardware, hardware_only) - _flags(
        software, params_for_encoder(software)
    )
    assert forbidden

    leaked = forbidden.intersection(_args(job, software))
    assert not leaked, f"{sorted(leaked)} in {software} command"
