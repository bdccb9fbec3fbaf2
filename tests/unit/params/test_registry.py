"""Tests for the encoder parameter registry."""

import pytest

from veq.params import (
    AV1_NVENC,
    AV1_QSV,
    ENCODERS,
    LIBSVTAV1,
    LIBVPX_VP9,
    PARAMS,
    VP9_QSV,
    clamp_profile,
    clamp_value,
    emit_args,
    get_param,
    is_supported,
    nvenc_preset,
    params_for_encoder,
    qsv_preset_name,
)
from veq.params.types import Range
from veq.profiles import Profile
from veq.profiles.codecs import Av1Config, Vp9Config


class TestTableShape:
    """Tests for registry completeness."""

    def test_every_param_lists_every_encoder(self):
        """Each parameter has an entry (maybe unsupported) per encoder."""
        ids = {e.id for e in ENCODERS}
        for param in PARAMS:
            assert set(param.encoders) == ids, param.name

    def test_param_names_unique(self):
        """Parameter names are unique."""
        names = [p.name for p in PARAMS]
        assert len(names) == len(set(names))

    def test_crf_not_supported_by_av1_hardware(self):
        """AV1 hardware encoders do not accept crf."""
        assert is_supported("crf", LIBVPX_VP9)
        assert not is_supported("crf", AV1_QSV)
        assert not is_supported("crf", AV1_NVENC)

    def test_params_for_encoder_filters(self):
        """Only supported parameters are yielded."""
        names = {p.name for p in params_for_encoder(LIBSVTAV1)}
        assert "svt_crf" in names
        assert "crf" not in names


class TestPresets:
    """Tests for preset conversions."""

    @pytest.mark.parametrize(
        ("preset", "expected"), [(1, "veryslow"), (4, "medium"), (7, "veryfast")]
    )
    def test_qsv_names(self, preset, expected):
        """QSV numbers map to preset names."""
        assert qsv_preset_name(preset) == expected

    def test_qsv_invalid_defaults_to_medium(self):
        """Unknown values fall back to medium."""
        assert qsv_preset_name("fast-ish") == "medium"

    @pytest.mark.parametrize(
        ("preset", "expected"), [("1", "p7"), ("7", "p1"), ("p3", "p3")]
    )
    def test_nvenc_inverts_numbers(self, preset, expected):
        """NVENC numeric presets invert; pN passes through."""
        assert nvenc_preset(preset) == expected


class TestClamp:
    """Tests for clamp_value and clamp_profile."""

    def test_clamp_bounds(self):
        """Numbers are clamped; strings and bools pass through."""
        bounds = Range(1, 240)
        assert clamp_value(600, bounds) == 240
        assert clamp_value(0, bounds) == 1
        assert clamp_value("x", bounds) == "x"
        assert clamp_value(True, bounds) is True

    def test_hw_gop_clamp_reported(self):
        """QSV GOP above the hardware cap is reported as a clamp."""
        profile = Profile(
            name="q", suffix="q", video_codec="vp9_qsv", gop_length=600
        )
        clamps = clamp_profile(profile, VP9_QSV)
        assert [(c.name, c.original, c.clamped) for c in clamps] == [
            ("gop_length", 600, 240)
        ]


class TestEmitArgs:
    """Tests for emit_args."""

    def test_vp9_bitrate_group_cq(self):
        """Constant quality emits -b:v 0 and -crf."""
        profile = Profile(name="v", suffix="v", crf=31)
        assert emit_args(LIBVPX_VP9, profile, "bitrate") == [
            "-b:v",
            "0k",
            "-crf",
            "31",
        ]

    def test_vp9_max_bitrate_feeds_target(self):
        """A max bitrate without target is used as -b:v."""
        profile = Profile(name="v", suffix="v", video_max_bitrate=4000)
        args = emit_args(LIBVPX_VP9, profile, "bitrate")
        assert args[:2] == ["-b:v", "4000k"]
        assert ["-maxrate", "4000k"] == args[args.index("-maxrate") :][:2]

    def test_overrides_replace_accessor(self):
        """Overrides take precedence over the profile value."""
        profile = Profile(name="v", suffix="v", codec=Vp9Config(cpu_used=2))
        args = emit_args(LIBVPX_VP9, profile, "speed", {"cpu_used": 4})
        assert args[args.index("-cpu-used") + 1] == "4"

    def test_nvenc_cq_falls_back_to_hw_cq(self):
        """nvenc_cq 0 falls back to hw_cq."""
        profile = Profile(
            name="n",
            suffix="n",
            video_codec="av1_nvenc",
            codec=Av1Config(nvenc_cq=0, hw_cq=30),
        )
        assert emit_args(AV1_NVENC, profile, "hw_quality") == ["-cq", "30"]

    def test_qsv_look_ahead_lead(self):
        """Look-ahead depth is preceded by -look_ahead 1."""
        profile = Profile(name="q", suffix="q", video_codec="vp9_qsv")
        args = emit_args(VP9_QSV, profile, "hw_preset")
        assert args == [
            "-preset",
            "medium",
            "-look_ahead",
            "1",
            "-look_ahead_depth",
            "40",
        ]

    def test_get_param_unknown(self):
        """Unknown parameter names return None."""
        assert get_param("nope") is None
