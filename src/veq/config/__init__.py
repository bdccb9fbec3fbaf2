"""Configuration: dataclass models and a TOML + environment loader."""

from veq.config.loader import (
    clear_config_cache,
    get_config,
    get_data_dir,
    get_default_config_path,
    load_config_file,
)
from veq.config.models import (
    ConfigError,
    DefaultsConfig,
    JobsConfig,
    LoggingConfig,
    ToolPathsConfig,
    VeqConfig,
)

__all__ = [
    "ConfigError",
    "DefaultsConfig",
    "JobsConfig",
    "LoggingConfig",
    "ToolPathsConfig",
    "VeqConfig",
    "clear_config_cache",
    "get_config",
    "get_data_dir",
    "get_default_config_path",
    "load_config_file",
]
