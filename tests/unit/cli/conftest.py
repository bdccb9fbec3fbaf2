"""Fixtures for CLI tests."""

import pytest
from click.testing import CliRunner

from veq.config import VeqConfig


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_obj(veq_config: VeqConfig) -> dict:
    """Context object carrying a ready config, so no config file is read."""
    return {"config": veq_config}
