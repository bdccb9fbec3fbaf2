"""Tests for ffprobe input inspection."""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from veq.introspector import (
    MediaIntrospectionError,
    parse_fraction,
    probe_duration,
    probe_input_info,
    try_probe_duration,
)
from veq.introspector.ffprobe import parse_input_info, tool_version

HDR_PROBE = {
    "streams": [
        {
            "codec_name": "hevc",
            "width": 3840,
            "height": 2160,
            "r_frame_rate": "24000/1001",
            "pix_fmt": "yuv420p10le",
            "color_transfer": "smpte2084",
        }
    ],
    "format": {"duration": "5400.250000"},
}


class TestParseFraction:
    """Tests for parse_fraction."""

    def test_ntsc_rate(self):
        """30000/1001 parses to 29.97."""
        assert parse_fraction("30000/1001") == pytest.approx(29.97, abs=0.01)

    @pytest.mark.parametrize("value", ["30", "a/b", "25/0"])
    def test_malformed(self, value):
        """Malformed fractions and zero denominators give None."""
        assert parse_fraction(value) is None


class TestParseInputInfo:
    """Tests for parse_input_info."""

    def test_hdr_source(self):
        """Dimensions, rate, bit depth and HDR are extracted."""
        info = parse_input_info(HDR_PROBE)

        assert (info.width, info.height) == (3840, 2160)
        assert info.fps == pytest.approx(23.976, abs=0.001)
        assert info.duration == pytest.approx(5400.25)
        assert info.bit_depth == 10
        assert info.is_hdr is True
        assert info.codec_name == "hevc"

    def test_raw_bit_depth_wins(self):
        """bits_per_raw_sample takes precedence over pix_fmt."""
        data = {
            "streams": [
                {
                    "width": 1920,
                    "height": 1080,
                    "r_frame_rate": "25/1",
                    "bits_per_raw_sample": "8",
                    "pix_fmt": "yuv420p10le",
                }
            ]
        }
        info = parse_input_info(data)
        assert info.bit_depth == 8
        assert info.duration is None
        assert info.is_hdr is False

    def test_avg_frame_rate_fallback(self):
        """avg_frame_rate is used when r_frame_rate is missing."""
        data = {"streams": [{"width": 640, "height": 480, "avg_frame_rate": "30/1"}]}
        assert parse_input_info(data).fps == 30.0

    def test_no_streams(self):
        """No video stream raises."""
        with pytest.raises(MediaIntrospectionError, match="No video stream"):
            parse_input_info({"streams": []})

    def test_missing_dimensions(self):
        """Missing width/height raises."""
        with pytest.raises(MediaIntrospectionError, match="dimensions"):
            parse_input_info({"streams": [{"r_frame_rate": "25/1"}]})

    def test_bad_rate(self):
        """An unparseable frame rate raises."""
        data = {"streams": [{"width": 1, "height": 1, "r_frame_rate": "0/0"}]}
        with pytest.raises(MediaIntrospectionError, match="framerate"):
            parse_input_info(data)


class TestProbe:
    """Tests for the ffprobe invocations."""

    def test_probe_input_info(self):
        """JSON output from ffprobe is parsed."""
        with patch(
            "veq.introspector.ffprobe.run_command",
            return_value=(json.dumps(HDR_PROBE), "", 0),
        ) as run:
            info = probe_input_info(Path("/v/movie.mkv"), "ffprobe-7")

        args = run.call_args.args[0]
        assert args[0] == "ffprobe-7"
        assert args[-1] == Path("/v/movie.mkv")
        assert info.width == 3840

    def test_nonzero_exit(self):
        """A failing ffprobe raises with its stderr."""
        with patch(
            "veq.introspector.ffprobe.run_command",
            return_value=("", "Invalid data found", 1),
        ):
            with pytest.raises(MediaIntrospectionError, match="Invalid data"):
                probe_duration(Path("/v/bad.mkv"))

    def test_timeout(self):
        """A timeout is reported as MediaIntrospectionError."""
        with patch(
            "veq.introspector.ffprobe.run_command",
            side_effect=subprocess.TimeoutExpired("ffprobe", 60),
        ):
            with pytest.raises(MediaIntrospectionError, match="timed out"):
                probe_duration(Path("/v/slow.mkv"))

    def test_invalid_json(self):
        """Garbage output is reported."""
        with patch(
            "veq.introspector.ffprobe.run_command", return_value=("not json", "", 0)
        ):
            with pytest.raises(MediaIntrospectionError, match="Invalid ffprobe"):
                probe_duration(Path("/v/x.mkv"))

    def test_try_probe_duration_swallows(self):
        """try_probe_duration returns None on any probe failure."""
        with patch(
            "veq.introspector.ffprobe.run_command",
            return_value=('{"format": {}}', "", 0),
        ):
            assert try_probe_duration(Path("/v/x.mkv")) is None

    def test_tool_version_missing(self):
        """A tool that cannot run has no version."""
        with patch(
            "veq.introspector.ffprobe.run_command", side_effect=OSError("missing")
        ):
            assert tool_version("ffmpeg") is None
