"""Tests for configuration loading and precedence."""

from pathlib import Path

import pytest

from veq.config import ConfigError, get_config, get_default_config_path


def _write_config(directory: Path, text: str) -> Path:
    path = directory / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """Tests for defaults without any config file."""

    def test_missing_file_yields_defaults(self, temp_dir: Path):
        """No config file gives a complete default config."""
        config = get_config(environ={"VEQ_DATA_DIR": str(temp_dir)})

        assert config.tools.ffmpeg_cmd == "ffmpeg"
        assert config.tools.ffprobe_cmd == "ffprobe"
        assert config.defaults.profile == "vp9-good"
        assert config.defaults.max_workers == 1
        assert config.jobs.stall_timeout_seconds == 0.0
        assert config.profiles_dir == temp_dir / "profiles"

    def test_config_path_env_wins_over_data_dir(self, temp_dir: Path):
        """VEQ_CONFIG_PATH overrides the data directory location."""
        env = {
            "VEQ_DATA_DIR": str(temp_dir / "data"),
            "VEQ_CONFIG_PATH": str(temp_dir / "custom.toml"),
        }
        assert get_default_config_path(env) == temp_dir / "custom.toml"


class TestPrecedence:
    """Tests for CLI > environment > file > default."""

    def test_file_values_are_read(self, temp_dir: Path):
        """Values in the TOML file are applied."""
        _write_config(
            temp_dir,
            '[tools]\nffmpeg = "/opt/ffmpeg"\n'
            '[defaults]\nmax_workers = 3\nprofile = "av1-svt"\n'
            "[jobs]\nstall_timeout_seconds = 90\n",
        )

        config = get_config(environ={"VEQ_DATA_DIR": str(temp_dir)})

        assert config.tools.ffmpeg == Path("/opt/ffmpeg")
        assert config.defaults.max_workers == 3
        assert config.defaults.profile == "av1-svt"
        assert config.jobs.stall_timeout_seconds == 90.0

    def test_environment_beats_file(self, temp_dir: Path):
        """VEQ_* variables override file values."""
        _write_config(
            temp_dir, '[tools]\nffmpeg = "/opt/ffmpeg"\n[defaults]\nmax_workers = 3\n'
        )
        env = {
            "VEQ_DATA_DIR": str(temp_dir),
            "VEQ_FFMPEG_PATH": "/env/ffmpeg",
            "VEQ_MAX_WORKERS": "5",
            "VEQ_LOG_LEVEL": "debug",
        }

        config = get_config(environ=env)

        assert config.tools.ffmpeg == Path("/env/ffmpeg")
        assert config.defaults.max_workers == 5
        assert config.logging.level == "debug"

    def test_arguments_beat_environment(self, temp_dir: Path):
        """Explicit arguments override the environment."""
        env = {"VEQ_DATA_DIR": str(temp_dir), "VEQ_MAX_WORKERS": "5"}

        config = get_config(
            environ=env, max_workers=2, ffprobe_path=Path("/cli/ffprobe")
        )

        assert config.defaults.max_workers == 2
        assert config.tools.ffprobe == Path("/cli/ffprobe")


class TestInvalidValues:
    """Tests for ConfigError reporting."""

    def test_bad_worker_env(self, temp_dir: Path):
        """A non-integer VEQ_MAX_WORKERS raises ConfigError."""
        env = {"VEQ_DATA_DIR": str(temp_dir), "VEQ_MAX_WORKERS": "many"}
        with pytest.raises(ConfigError, match="VEQ_MAX_WORKERS"):
            get_config(environ=env)

    def test_bad_log_level(self, temp_dir: Path):
        """Unknown log levels are rejected."""
        with pytest.raises(ConfigError, match="logging.level"):
            get_config(environ={"VEQ_DATA_DIR": str(temp_dir)}, log_level="loud")

    def test_zero_workers_rejected(self, temp_dir: Path):
        """max_workers below 1 is rejected."""
        _write_config(temp_dir, "[defaults]\nmax_workers = 0\n")
        with pytest.raises(ConfigError, match="max_workers"):
            get_config(environ={"VEQ_DATA_DIR": str(temp_dir)})

    def test_section_must_be_table(self, temp_dir: Path):
        """A scalar where a table is expected raises ConfigError."""
        _write_config(temp_dir, 'tools = "ffmpeg"\n')
        with pytest.raises(ConfigError, match=r"\[tools\]"):
            get_config(environ={"VEQ_DATA_DIR": str(temp_dir)})

    def test_unparseable_file_strict(self, temp_dir: Path):
        """Strict mode raises on broken TOML."""
        _write_config(temp_dir, "[tools\n")
        env = {"VEQ_DATA_DIR": str(temp_dir)}

        with pytest.raises(ConfigError, match="Cannot parse"):
            get_config(environ=env, strict=True)

    def test_unparseable_file_lenient(self, temp_dir: Path):
        """Without strict, broken TOML falls back to defaults."""
        _write_config(temp_dir, "[tools\n")
        config = get_config(environ={"VEQ_DATA_DIR": str(temp_dir)})
        assert config.defaults.max_workers == 1
