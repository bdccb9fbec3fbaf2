"""Tests for ffmpeg progress parsing."""

import pytest

from veq.tools.ffmpeg_progress import ProgressParser, parse_progress_line

SAMPLE_BLOCK = """\
frame=240
fps=59.94
stream_0_0_q=31.0
bitrate=1843.2kbits/s
total_size=2304000
out_time_us=10010000
out_time_ms=10010000
out_time=00:00:10.010000
dup_frames=0
drop_frames=0
speed=2.47x
progress=continue
"""


class TestParseProgressLine:
    """Tests for parse_progress_line."""

    def test_splits_key_value(self):
        """Whitespace around key and value is stripped."""
        assert parse_progress_line(" speed = 1.5x \n") == ("speed", "1.5x")

    def test_no_separator(self):
        """Lines without '=' are ignored."""
        assert parse_progress_line("Press [q] to stop") is None


class TestProgressParser:
    """Tests for ProgressParser."""

    def test_parses_full_block(self):
        """A progress block sets every known field."""
        parser = ProgressParser()
        for line in SAMPLE_BLOCK.splitlines():
            parser.parse_line(line)

        assert parser.out_time_s == pytest.approx(10.01)
        assert parser.fps == pytest.approx(59.94)
        assert parser.speed == pytest.approx(2.47)
        assert parser.bitrate_kbps == pytest.approx(1843.2)
        assert parser.total_size == 2304000
        assert parser.is_complete is False

    def test_progress_end_marks_complete(self):
        """progress=end sets is_complete."""
        parser = ProgressParser()
        assert parser.parse_line("progress=end") is True
        assert parser.is_complete is True

    def test_na_values_keep_previous(self):
        """N/A does not wipe a previously parsed value."""
        parser = ProgressParser()
        parser.parse_line("speed=2.0x")
        assert parser.parse_line("speed=N/A") is False
        assert parser.parse_line("bitrate=N/A") is False
        assert parser.speed == 2.0
        assert parser.bitrate_kbps is None

    def test_negative_out_time_ignored(self):
        """Negative timestamps from the first frames are ignored."""
        parser = ProgressParser()
        parser.parse_line("out_time_us=5000000")
        assert parser.parse_line("out_time_us=-9223372036854775807") is False
        assert parser.out_time_s == 5.0

    def test_unknown_key(self):
        """Unknown keys report no update."""
        assert ProgressParser().parse_line("dup_frames=3") is False

    def test_percentage_monotonic_and_capped(self):
        """Percent grows with out_time and never exceeds 100."""
        parser = ProgressParser()
        seen = []
        for us in (0, 2_500_000, 5_000_000, 10_000_000, 12_000_000):
            parser.parse_line(f"out_time_us={us}")
            seen.append(parser.progress_pct(10.0))

        assert seen == sorted(seen)
        assert seen[-1] == 100.0
        assert seen[1] == pytest.approx(25.0)

    @pytest.mark.parametrize("duration", [None, 0.0, -1.0])
    def test_unknown_duration(self, duration):
        """Unknown or non-positive durations give 0 percent."""
        parser = ProgressParser()
        parser.parse_line("out_time_us=5000000")
        assert parser.progress_pct(duration) == 0.0

    def test_snapshot_is_detached(self):
        """Later lines do not change an earlier snapshot."""
        parser = ProgressParser()
        parser.parse_line("out_time_us=1000000")
        snap = parser.snapshot()
        parser.parse_line("out_time_us=2000000")

        assert snap.out_time_s == 1.0
        assert snap.progress_pct(4.0) == 25.0
