"""Run configuration for the tftest orchestrator.

Holds the settings consumed by discovery, the per-job pipeline and the
scheduler. ``normalize_config`` fills in defaults and derives the flat
``KEY=VALUE`` environment list handed to every child process;
``load_config`` reads the same settings from a YAML (or JSON) file.
"""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

# Credentials and region understood by the mock service. User supplied
# environment overrides win key-by-key.
MOCK_CREDENTIALS: dict[str, str] = {
    "AWS_ACCESS_KEY_ID": "mock_access_key",
    "AWS_SECRET_ACCESS_KEY": "mock_secret_key",
    "AWS_REGION": "us-east-1",
}

DEFAULT_TEST_PATTERN = "*_test.py"
DEFAULT_MOCK_COMMAND: tuple[str, ...] = ("moto_server",)
DEFAULT_INFRA_COMMAND: tuple[str, ...] = ("terraform",)
DEFAULT_TEST_COMMAND: tuple[str, ...] = (sys.executable, "-m", "pytest", "-v")


class ConfigError(ValueError):
    """Raised when the run configuration is missing or malformed."""


@dataclass(frozen=True)
class RunConfig:
    """Settings for a single orchestrator run.

    Attributes:
        dir: Root directory whose subdirectories are scanned for jobs.
            Empty means the current directory.
        env: Extra environment variables for every child process.
        services: Target services written into the generated provider.
            Empty means the built-in service list.
        jobs_per_cpu: Parallelism factor; values <= 0 normalize to 1.
        test_pattern: Glob matched against files directly inside a job
            directory.
        mock_command: Command prefix starting the mock service; the
            orchestrator appends ``-p <port>``.
        infra_command: Command prefix of the infra tool.
        test_command: Command prefix running a job's test file; the test
            file path is appended.
        readiness_attempts: Maximum readiness probe attempts.
        readiness_interval: Seconds to sleep before each probe attempt.
        cleanup_attempts: Attempts per artifact removal during cleanup.
        cleanup_delay: Seconds between cleanup removal attempts.
        env_entries: Derived ``KEY=VALUE`` list, populated by
            ``normalize_config``.
    """

    dir: str = ""
    env: Mapping[str, str] = field(default_factory=dict)
    services: tuple[str, ...] = ()
    jobs_per_cpu: int = 0
    test_pattern: str = DEFAULT_TEST_PATTERN
    mock_command: tuple[str, ...] = DEFAULT_MOCK_COMMAND
    infra_command: tuple[str, ...] = DEFAULT_INFRA_COMMAND
    test_command: tuple[str, ...] = DEFAULT_TEST_COMMAND
    readiness_attempts: int = 20
    readiness_interval: float = 1.0
    cleanup_attempts: int = 10
    cleanup_delay: float = 0.1
    env_entries: tuple[str, ...] = ()

    @property
    def max_parallel(self) -> int:
        """Number of jobs allowed in flight at once (CPUs x jobs_per_cpu)."""
        return (os.cpu_count() or 1) * max(self.jobs_per_cpu, 1)


def merge_env(base: Mapping[str, str], overrides: Mapping[str, str] | None) -> dict[str, str]:
    """Return a new mapping with ``overrides`` applied over ``base``."""
    merged = dict(base)
    merged.update(overrides or {})
    return merged


def to_env_entries(env: Mapping[str, str]) -> tuple[str, ...]:
    """Flatten a mapping into sorted ``KEY=VALUE`` entries."""
    return tuple(f"{key}={env[key]}" for key in sorted(env))


def normalize_config(config: RunConfig | None) -> RunConfig:
    """Validate ``config`` and return a fully populated copy.

    Args:
        config: The caller's configuration, possibly with empty fields.

    Returns:
        A new RunConfig with defaults applied and ``env_entries`` derived.

    Raises:
        ConfigError: If no configuration was provided.
    """
    if config is None:
        raise ConfigError("a tftest RunConfig must be provided")

    env = merge_env(MOCK_CREDENTIALS, config.env)

    return dataclasses.replace(
        config,
        dir=config.dir or ".",
        env=dict(config.env or {}),
        services=tuple(config.services or ()),
        jobs_per_cpu=config.jobs_per_cpu if config.jobs_per_cpu > 0 else 1,
        readiness_attempts=max(config.readiness_attempts, 1),
        cleanup_attempts=max(config.cleanup_attempts, 1),
        env_entries=to_env_entries(env),
    )


# Keys accepted in a config file, mapped to a converter for the value
_FILE_KEYS: dict[str, Any] = {
    "dir": str,
    "env": lambda v: {str(k): str(val) for k, val in dict(v).items()},
    "services": lambda v: tuple(str(s) for s in v),
    "jobs_per_cpu": int,
    "test_pattern": str,
    "mock_command": lambda v: _as_command(v),
    "infra_command": lambda v: _as_command(v),
    "test_command": lambda v: _as_command(v),
    "readiness_attempts": int,
    "readiness_interval": float,
    "cleanup_attempts": int,
    "cleanup_delay": float,
}


def _as_command(value: Any) -> tuple[str, ...]:
    """Accept a command as a list of arguments or a single executable name."""
    if isinstance(value, str):
        return (value,)
    return tuple(str(part) for part in value)


def load_config(path: Path) -> RunConfig:
    """Load a RunConfig from a YAML or JSON file.

    A relative ``dir`` is resolved against the file's directory.

    Args:
        path: Config file path.

    Returns:
        The (not yet normalized) RunConfig.

    Raises:
        ConfigError: If the file cannot be read or parsed, is not a
            mapping, or contains unknown keys or bad values.
    """
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigError(f"failed to read config file: {path} -> {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid config file: {path} -> {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file must contain a mapping: {path}")

    unknown = sorted(set(data) - set(_FILE_KEYS))
    if unknown:
        raise ConfigError(
            f"unknown config keys in {path}: {', '.join(map(str, unknown))}"
        )

    values: dict[str, Any] = {}
    for key, raw in data.items():
        if raw is None:
            continue
        try:
            values[key] = _FILE_KEYS[key](raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid value for {key!r} in {path}: {e}") from e

    if "dir" in values and not Path(values["dir"]).is_absolute():
        values["dir"] = str((path.parent / values["dir"]).resolve())

    return RunConfig(**values)
