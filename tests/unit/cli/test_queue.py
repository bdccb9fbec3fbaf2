"""Tests for veq scan, veq dry-run and veq encode."""

from unittest.mock import patch

import pytest

from veq.cli import main
from veq.executor.transcode import BuildContext
from veq.jobs import QueueSummary, WorkerPool
from veq.jobs.state import state_exists, state_path
from veq.profiles import Av1Config, Profile, Vp9Config, save_profile

QUEUE = "veq.cli.queue"
PROBE = "veq.scanner.orchestrator.try_probe_duration"


def _encode(job, profile, **kwargs):
    if job.input_path.name.startswith("bad"):
        raise RuntimeError("ffmpeg exited with code 1")
    job.output_path.write_bytes(b"encoded")


def _fake_pool(max_workers, config=None):
    return WorkerPool(max_workers, encode_fn=_encode, config=config)


@pytest.fixture
def out_dir(temp_dir):
    path = temp_dir / "out"
    path.mkdir()
    return path


@pytest.fixture
def host(no_hardware):
    """Patch host detection and duration probing for queue commands."""
    with (
        patch(f"{QUEUE}.detect_capabilities", return_value=no_hardware),
        patch(f"{QUEUE}.detect_build_context", return_value=BuildContext()),
        patch(PROBE, return_value=None),
    ):
        yield


@pytest.fixture
def qsv_profile(veq_config):
    """A saved AV1 QSV profile, unusable on a host without hardware."""
    profile = Profile(
        name="Intel AV1",
        suffix="av1qsv",
        container="mkv",
        video_codec="av1_qsv",
        use_hardware_encoding=True,
        crf=0,
        codec=Av1Config(),
    )
    save_profile(profile, veq_config.profiles_dir)
    return "intel_av1"


class TestScanCommand:
    """Tests for veq scan."""

    def test_lists_jobs(self, runner, cli_obj, temp_video_dir):
        """Each video is listed with its status and output path."""
        result = runner.invoke(main, ["scan", str(temp_video_dir)], obj=cli_obj)

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert any(
            line.startswith("pending") and "movie.mkv ->" in line for line in lines
        )
        # episode.webm would be written over its own input
        assert any(
            line.startswith("skipped") and "episode.webm ->" in line
            for line in lines
        )
        assert "3 video(s), 2 to encode" in result.output
        assert "notes.txt" not in result.output

    def test_probe_shows_duration(self, runner, cli_obj, temp_video_dir, out_dir):
        """--probe adds the probed duration."""
        with patch(PROBE, return_value=12.5):
            result = runner.invoke(
                main,
                ["scan", str(temp_video_dir), "--probe", "--output-dir", str(out_dir)],
                obj=cli_obj,
            )
        assert result.exit_code == 0
        assert "(12.5s)" in result.output
        assert "3 video(s), 3 to encode" in result.output

    def test_unknown_profile(self, runner, cli_obj, temp_video_dir):
        """An unknown profile is a CLI error."""
        result = runner.invoke(
            main, ["scan", str(temp_video_dir), "-p", "nope"], obj=cli_obj
        )
        assert result.exit_code == 1
        assert "nope" in result.output

    def test_missing_directory(self, runner, cli_obj, temp_dir):
        """The directory must exist."""
        result = runner.invoke(main, ["scan", str(temp_dir / "missing")], obj=cli_obj)
        assert result.exit_code == 2


class TestDryRunCommand:
    """Tests for veq dry-run."""

    def test_prints_commands(self, runner, cli_obj, temp_video_dir, host):
        """One ffmpeg command per pending job is printed."""
        result = runner.invoke(main, ["dry-run", str(temp_video_dir)], obj=cli_obj)

        assert result.exit_code == 0, result.output
        assert "# profile vp9-good using libvpx-vp9" in result.output
        assert "# skipped (output is the input file):" in result.output
        assert result.output.count("ffmpeg -i ") == 2
        assert "-c:v libvpx-vp9" in result.output

    def test_two_pass_profile(
        self, runner, cli_obj, veq_config, temp_video_dir, out_dir, host
    ):
        """Two-pass profiles print both passes joined with &&."""
        profile = Profile(
            name="vp9-2pass",
            suffix="2p",
            video_target_bitrate=2000,
            two_pass=True,
            codec=Vp9Config(cpu_used_pass1=4, cpu_used_pass2=1),
        )
        save_profile(profile, veq_config.profiles_dir)
        result = runner.invoke(
            main,
            [
                "dry-run",
                str(temp_video_dir),
                "-p",
                "vp9-2pass",
                "--output-dir",
                str(out_dir),
            ],
            obj=cli_obj,
        )
        assert result.exit_code == 0, result.output
        assert result.output.count("-pass 1") == 3
        assert result.output.count("-pass 2") == 3
        assert "&& \\" in result.output


class TestEncodeCommand:
    """Tests for veq encode."""

    def test_encodes_queue(self, runner, cli_obj, temp_video_dir, out_dir, host):
        """Every pending video is encoded and the queue is saved."""
        with patch(f"{QUEUE}.WorkerPool", side_effect=_fake_pool):
            result = runner.invoke(
                main,
                ["encode", str(temp_video_dir), "--output-dir", str(out_dir)],
                obj=cli_obj,
            )

        assert result.exit_code == 0, result.output
        assert "3 completed, 0 failed, 0 skipped" in result.output
        assert "[done]   movie.mkv" in result.output
        assert sorted(p.name for p in out_dir.iterdir()) == [
            "episode.webm",
            "movie.webm",
            "show.webm",
        ]
        assert state_exists(temp_video_dir.resolve())

    def test_resume_skips_done(self, runner, cli_obj, temp_video_dir, out_dir, host):
        """A second run resumes the saved queue instead of rescanning."""
        args = ["encode", str(temp_video_dir), "--output-dir", str(out_dir)]
        with patch(f"{QUEUE}.WorkerPool", side_effect=_fake_pool):
            runner.invoke(main, args, obj=cli_obj)
            result = runner.invoke(main, args, obj=cli_obj)

        assert result.exit_code == 0, result.output
        assert "Resuming queue" in result.output
        assert "0 completed, 0 failed, 3 skipped" in result.output

    def test_resume_with_other_profile(
        self, runner, cli_obj, temp_video_dir, out_dir, host
    ):
        """Switching profiles on a saved queue needs --fresh."""
        args = ["encode", str(temp_video_dir), "--output-dir", str(out_dir)]
        with patch(f"{QUEUE}.WorkerPool", side_effect=_fake_pool):
            runner.invoke(main, args, obj=cli_obj)
            result = runner.invoke(main, [*args, "-p", "vp9-best"], obj=cli_obj)
            assert result.exit_code == 1
            assert "--fresh" in result.output

            fresh = runner.invoke(
                main, [*args, "-p", "vp9-best", "--fresh", "--overwrite"], obj=cli_obj
            )
        assert fresh.exit_code == 0, fresh.output
        assert "3 completed" in fresh.output

    def test_corrupt_state(self, runner, cli_obj, temp_video_dir, host):
        """An unreadable state file asks for --fresh."""
        state_path(temp_video_dir).write_text("{broken")
        result = runner.invoke(main, ["encode", str(temp_video_dir)], obj=cli_obj)
        assert result.exit_code == 1
        assert "--fresh" in result.output

    def test_failure_exit_code(self, runner, cli_obj, temp_dir, host):
        """A failed encode is reported and the exit status is 1."""
        source_dir = temp_dir / "sources"
        source_dir.mkdir()
        (source_dir / "bad.mkv").write_bytes(b"mkv")
        (source_dir / "good.mkv").write_bytes(b"mkv")

        with patch(f"{QUEUE}.WorkerPool", side_effect=_fake_pool):
            result = runner.invoke(main, ["encode", str(source_dir)], obj=cli_obj)

        assert result.exit_code == 1
        assert "1 completed, 1 failed" in result.output
        assert "[failed] bad.mkv: ffmpeg exited with code 1" in result.output

    def test_interrupted_exit_code(self, runner, cli_obj, temp_video_dir, host):
        """An interrupted run exits with 130."""
        with patch(
            f"{QUEUE}.QueueRunner.run",
            return_value=QueueSummary(completed=1, interrupted=True),
        ):
            result = runner.invoke(main, ["encode", str(temp_video_dir)], obj=cli_obj)
        assert result.exit_code == 130

    def test_profile_invalid_for_host(
        self, runner, cli_obj, temp_video_dir, host, qsv_profile
    ):
        """A profile the host cannot encode is rejected before any work."""
        with patch(f"{QUEUE}.WorkerPool") as pool:
            result = runner.invoke(
                main, ["encode", str(temp_video_dir), "-p", qsv_profile], obj=cli_obj
            )
        assert result.exit_code == 1
        assert "not valid for this host" in result.output
        assert "AV1 QSV not available" in result.output
        pool.assert_not_called()
