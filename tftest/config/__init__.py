"""Run configuration: defaults, normalization and config-file loading."""

from tftest.config.run_config import (
    MOCK_CREDENTIALS,
    ConfigError,
    RunConfig,
    load_config,
    normalize_config,
)
from tftest.config.services import DEFAULT_SERVICES

__all__ = [
    "DEFAULT_SERVICES",
    "MOCK_CREDENTIALS",
    "ConfigError",
    "RunConfig",
    "load_config",
    "normalize_config",
]
