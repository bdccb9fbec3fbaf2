"""Shared test fixtures for veq."""

import shutil
import tempfile
from pathlib import Path

import pytest

from veq.config import VeqConfig, clear_config_cache
from veq.domain.models import VideoJob
from veq.tools.hardware import CapabilityMatrix, clear_capability_cache


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test isolation."""
    dir_path = tempfile.mkdtemp()
    yield Path(dir_path)
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def temp_video_dir(temp_dir: Path) -> Path:
    """Create a temporary directory with sample video files."""
    video_dir = temp_dir / "videos"
    video_dir.mkdir()

    (video_dir / "movie.mkv").touch()
    (video_dir / "show.MP4").touch()
    (video_dir / "notes.txt").touch()

    nested = video_dir / "nested"
    nested.mkdir()
    (nested / "episode.webm").touch()

    # Hidden directory (should be skipped)
    hidden = video_dir / ".veq_tmp"
    hidden.mkdir()
    (hidden / "window.webm").touch()

    return video_dir


@pytest.fixture
def veq_config(temp_dir: Path) -> VeqConfig:
    """Config with an isolated data directory."""
    return VeqConfig(data_dir=temp_dir / "data")


@pytest.fixture
def make_job(temp_dir: Path):
    """Factory for jobs whose paths live in the temp directory."""

    def _make(name: str = "movie.mkv", **kwargs) -> VideoJob:
        kwargs.setdefault("profile", "vp9-good")
        return VideoJob(
            input_path=temp_dir / name,
            output_path=temp_dir / (Path(name).stem + ".webm"),
            **kwargs,
        )

    return _make


@pytest.fixture
def no_hardware() -> CapabilityMatrix:
    """Capability matrix of a host without any hardware encoder."""
    return CapabilityMatrix(av1_svt=True)


@pytest.fixture(autouse=True)
def _reset_caches():
    """Drop process-wide caches between tests."""
    clear_config_cache()
    clear_capability_cache()
    yield
    clear_config_cache()
    clear_capability_cache()
