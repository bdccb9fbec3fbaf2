"""Tests for ffmpeg command building."""

from pathlib import Path

import pytest

from veq.domain.models import VideoJob
from veq.executor.transcode import (
    BuildContext,
    Encoder,
    build_commands,
    format_commands,
    two_pass_log_prefix,
)
from veq.executor.transcode.command import format_seconds, svtav1_params
from veq.introspector import InputInfo
from veq.profiles import HwEncodingConfig, Profile, get_builtin
from veq.profiles.codecs import Av1Config, Vp9Config
from veq.tools.hardware import CapabilityMatrix, VaapiConfig, VaapiDriver

SDR_1080P = InputInfo(width=1920, height=1080, fps=23.976, codec_name="h264")
HDR_4K_60 = InputInfo(
    width=3840, height=2160, fps=59.94, codec_name="hevc", bit_depth=10, is_hdr=True
)


@pytest.fixture
def job() -> VideoJob:
    return VideoJob(
        input_path=Path("/videos/movie.mkv"),
        output_path=Path("/videos/movie.webm"),
        profile="vp9-good",
    )


def _value(args: list[str], flag: str) -> str:
    return args[args.index(flag) + 1]


def _flag_count(args: list[str], flag: str) -> int:
    return sum(1 for a in args if a == flag)


class TestSoftwareVp9:
    """Tests for libvpx-vp9 commands."""

    def test_single_pass_constant_quality(self, job):
        """The default profile builds one CQ command."""
        commands = build_commands(job, get_builtin("vp9-good"))

        assert len(commands) == 1
        args = commands[0].args
        assert args[:2] == ["-i", "/videos/movie.mkv"]
        assert _value(args, "-c:v") == "libvpx-vp9"
        assert _value(args, "-crf") == "31"
        assert _value(args, "-b:v") == "0k"
        assert args[-1] == "/videos/movie.webm"
        assert commands[0].pass_number is None

    def test_progress_flags_always_present(self, job):
        """Every command streams progress to stdout without stats."""
        args = build_commands(job, get_builtin("vp9-good"))[0].args
        assert _value(args, "-progress") == "-"
        assert "-nostats" in args

    def test_overwrite_adds_y(self, job):
        """-y appears only for overwrite jobs."""
        profile = get_builtin("vp9-good")
        assert "-y" not in build_commands(job, profile)[0].args

        job.overwrite = True
        assert "-y" in build_commands(job, profile)[0].args

    def test_build_is_idempotent(self, job):
        """The same inputs produce identical commands."""
        profile = get_builtin("Efficient 4K")
        context = BuildContext(input_info=HDR_4K_60)
        first = build_commands(job, profile, context=context)
        second = build_commands(job, profile, context=context)
        assert first == second

    def test_each_flag_once(self, job):
        """Registry flags are never emitted twice."""
        args = build_commands(job, get_builtin("vp9-good"))[0].args
        for flag in ("-crf", "-b:v", "-c:v", "-g", "-cpu-used", "-row-mt"):
            assert _flag_count(args, flag) == 1, flag

    def test_fps_and_scale_filters(self, job):
        """Sources above the caps get fps and scale filters."""
        profile = get_builtin("1080p Shrinker")
        context = BuildContext(input_info=HDR_4K_60)
        vf = _value(build_commands(job, profile, context=context)[0].args, "-vf")

        assert vf.startswith("fps=fps=30,")
        assert "min(1920,iw)" in vf

    def test_no_filters_without_input_info(self, job):
        """Source-dependent filters are skipped without probe data."""
        args = build_commands(job, get_builtin("1080p Shrinker"))[0].args
        assert "-vf" not in args

    def test_tonemap_for_hdr_to_sdr(self, job):
        """HDR input to a bt709 profile is tone mapped."""
        profile = Profile(name="sdr", suffix="sdr", colorspace=1, color_trc=1)
        context = BuildContext(input_info=HDR_4K_60)
        vf = _value(build_commands(job, profile, context=context)[0].args, "-vf")
        assert "tonemap=hable:desat=0" in vf


class TestTwoPass:
    """Tests for two-pass software VP9."""

    def _profile(self) -> Profile:
        return Profile(
            name="2p",
            suffix="2p",
            two_pass=True,
            video_target_bitrate=3000,
            codec=Vp9Config(cpu_used_pass1=4, cpu_used_pass2=1),
        )

    def test_two_commands_share_passlog(self, job):
        """Both passes use the job's pass-log prefix."""
        first, second = build_commands(job, self._profile())
        prefix = str(two_pass_log_prefix(job))

        assert (first.pass_number, second.pass_number) == (1, 2)
        assert _value(first.args, "-passlogfile") == prefix
        assert _value(second.args, "-passlogfile") == prefix
        assert _value(first.args, "-pass") == "1"
        assert _value(second.args, "-pass") == "2"

    def test_first_pass_discards_output(self, job):
        """Pass 1 drops audio and writes to the null muxer."""
        first, second = build_commands(job, self._profile())

        assert "-an" in first.args
        assert first.args[-3:-1] == ["-f", "null"]
        assert "-map" not in first.args
        assert second.args[-1] == "/videos/movie.webm"
        assert "-map" in second.args

    def test_per_pass_cpu_used(self, job):
        """Each pass uses its own cpu-used value."""
        first, second = build_commands(job, self._profile())
        assert _value(first.args, "-cpu-used") == "4"
        assert _value(second.args, "-cpu-used") == "1"

    def test_two_pass_requires_target_bitrate(self, job):
        """Without a target bitrate the encode is single-pass."""
        assert len(build_commands(job, get_builtin("vp9-best"))) == 1

    def test_hardware_never_two_pass(self, job):
        """An explicit hardware config disables two-pass."""
        commands = build_commands(job, self._profile(), hw_config=HwEncodingConfig())
        assert len(commands) == 1
        assert "-pass" not in commands[0].args


class TestHardwareVp9:
    """Tests for VP9 QSV and VAAPI commands."""

    def _profile(self, codec: str) -> Profile:
        return Profile(
            name="hw",
            suffix="hw",
            video_codec=codec,
            use_hardware_encoding=True,
            gop_length=600,
            codec=Vp9Config(hw_global_quality=90),
        )

    def test_qsv_uses_q_and_clamped_gop(self, job):
        """VP9 QSV takes -q:v and caps the GOP at 240."""
        command = build_commands(job, self._profile("vp9_qsv"))[0]

        assert command.encoder == "vp9_qsv"
        assert _value(command.args, "-init_hw_device").startswith("qsv=qs:")
        assert _value(command.args, "-q:v") == "90"
        assert _value(command.args, "-g:v") == "240"
        assert "-crf" not in command.args

    def test_vaapi_env_from_driver(self, job):
        """The detected VAAPI driver is exported to ffmpeg."""
        vaapi = VaapiConfig(
            VaapiDriver("iHD", "/usr/lib/dri", "/usr/lib/dri/iHD_drv_video.so"),
            "/dev/dri/renderD129",
        )
        context = BuildContext(input_info=SDR_1080P, vaapi=vaapi)
        command = build_commands(job, self._profile("vp9_vaapi"), context=context)[0]

        assert command.env == {
            "LIBVA_DRIVERS_PATH": "/usr/lib/dri",
            "LIBVA_DRIVER_NAME": "iHD",
        }
        assert _value(command.args, "-init_hw_device") == "vaapi=va:/dev/dri/renderD129"
        assert _value(command.args, "-global_quality:v") == "90"
        assert _value(command.args, "-hwaccel_output_format") == "vaapi"

    def test_vaapi_uploads_when_filtering(self, job):
        """Filters force software frames followed by hwupload."""
        profile = self._profile("vp9_vaapi")
        profile.scale_width, profile.scale_height = 1280, 720
        context = BuildContext(input_info=SDR_1080P)
        args = build_commands(job, profile, context=context)[0].args

        assert "-hwaccel_output_format" not in args
        assert _value(args, "-vf").endswith("format=nv12,hwupload")

    def test_capabilities_fallback(self, job):
        """Missing hardware falls back to libvpx-vp9."""
        command = build_commands(
            job, self._profile("vp9_qsv"), capabilities=CapabilityMatrix()
        )[0]
        assert command.encoder == "libvpx-vp9"


class TestAv1:
    """Tests for AV1 commands."""

    def test_svt_params(self, job):
        """SVT-AV1 gets its preset, crf and -svtav1-params."""
        args = build_commands(job, get_builtin("av1-svt"))[0].args

        assert _value(args, "-c:v") == "libsvtav1"
        assert _value(args, "-crf") == "28"
        assert _value(args, "-preset") == "8"
        assert _value(args, "-svtav1-params") == "tune=0:enable-overlays=1:scd=1:scm=2"

    def test_svt_params_film_grain(self):
        """Film grain options are included when enabled."""
        profile = Profile(
            name="a",
            suffix="a",
            codec=Av1Config(film_grain=8, film_grain_denoise=True, enable_tf=False),
        )
        params = svtav1_params(profile)
        assert "film-grain=8:film-grain-denoise=1" in params
        assert params.endswith("enable-tf=0")

    def test_nvenc_preset_and_cq(self, job):
        """NVENC converts numeric presets and never emits -crf."""
        profile = Profile(
            name="n",
            suffix="n",
            video_codec="av1_nvenc",
            use_hardware_encoding=True,
            codec=Av1Config(hw_preset="2", nvenc_cq=20),
        )
        args = build_commands(job, profile)[0].args

        assert args[:2] == ["-hwaccel", "cuda"]
        assert _value(args, "-preset") == "p6"
        assert _value(args, "-cq") == "20"
        assert "-crf" not in args

    def test_av1_qsv_surface_format(self, job):
        """10-bit pix_fmt maps to a p010 QSV surface."""
        profile = Profile(
            name="q",
            suffix="q",
            video_codec="av1_qsv",
            use_hardware_encoding=True,
            pix_fmt="yuv420p10le",
            codec=Av1Config(),
        )
        args = build_commands(job, profile)[0].args

        assert _value(args, "-vf") == "vpp_qsv=format=p010"
        assert _value(args, "-pix_fmt") == "p010le"
        assert _value(args, "-q:v") == "65"


class TestWindowAndAudio:
    """Tests for window encodes and audio mapping."""

    def test_window_seeks_before_input(self, job):
        """A window adds -ss/-t before -i and drops audio."""
        context = BuildContext(window=(65.0, 10.0), disable_audio=True)
        args = build_commands(job, get_builtin("vp9-good"), context=context)[0].args

        assert args[:5] == ["-ss", "65", "-t", "10", "-i"]
        assert "-sn" in args
        assert "-map" not in args

    def test_webm_audio_is_opus(self, job):
        """WebM output maps one Opus track by default."""
        args = build_commands(job, get_builtin("vp9-good"))[0].args
        assert _value(args, "-c:a:0") == "libopus"
        assert _value(args, "-b:a:0") == "128k"

    def test_additional_args_before_output(self, job):
        """User arguments go right before the output path."""
        profile = Profile(name="x", suffix="x", additional_args="-metadata title='A B'")
        args = build_commands(job, profile)[0].args
        assert args[-3:] == ["-metadata", "title=A B", "/videos/movie.webm"]


class TestFormatting:
    """Tests for command rendering helpers."""

    def test_format_commands_quotes_spaces(self, job):
        """Arguments containing spaces are quoted."""
        job.input_path = Path("/videos/my movie.mkv")
        text = format_commands(build_commands(job, get_builtin("vp9-good")))
        assert text.startswith('ffmpeg -i "/videos/my movie.mkv"')

    def test_two_pass_joined(self, job):
        """Two-pass commands are chained with &&."""
        profile = Profile(
            name="2p", suffix="2p", two_pass=True, video_target_bitrate=2000
        )
        text = format_commands(build_commands(job, profile), "/opt/ffmpeg")
        assert text.count("/opt/ffmpeg") == 2
        assert "\n&& \\\n" in text

    @pytest.mark.parametrize(
        ("value", "expected"), [(5.0, "5"), (2.5, "2.5"), (1 / 3, "0.333")]
    )
    def test_format_seconds(self, value, expected):
        """Whole seconds drop the decimal point."""
        assert format_seconds(value) == expected

    def test_encoder_override(self, job):
        """An explicit encoder bypasses selection."""
        command = build_commands(
            job, get_builtin("vp9-good"), encoder=Encoder.VP9_QSV
        )[0]
        assert command.encoder == "vp9_qsv"
