"""Entry point for the tftest orchestrator.

Parses command-line arguments, merges them over an optional config file
and runs every discovered job. Exits non-zero if any job failed or the
run could not start.
"""

from __future__ import annotations

import argparse
import dataclasses
import shlex
import sys
from pathlib import Path
from typing import Any

from tftest.config.run_config import ConfigError, RunConfig, load_config
from tftest.console import Console
from tftest.discovery.jobs import DiscoveryError
from tftest.runner import run


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run Terraform integration tests against per-job mock AWS services"
    )
    parser.add_argument(
        "--dir",
        default=None,
        help="Directory containing the job directories (default: current directory)",
    )
    parser.add_argument(
        "--config-file",
        type=Path,
        default=None,
        help="YAML or JSON file with run settings; command-line flags win",
    )
    parser.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra environment variable for every job process (repeatable)",
    )
    parser.add_argument(
        "--service",
        action="append",
        default=[],
        dest="services",
        metavar="NAME",
        help="Restrict provider endpoints to this service (repeatable)",
    )
    parser.add_argument(
        "--jobs-per-cpu",
        type=int,
        default=None,
        help="Jobs run in parallel per CPU (default: 1)",
    )
    parser.add_argument(
        "--test-pattern",
        default=None,
        help="Glob selecting a job's test file (default: *_test.py)",
    )
    parser.add_argument(
        "--mock-command",
        default=None,
        help="Command starting the mock service; '-p PORT' is appended (default: moto_server)",
    )
    parser.add_argument(
        "--infra-command",
        default=None,
        help="Infra tool command (default: terraform)",
    )
    parser.add_argument(
        "--test-command",
        default=None,
        help="Command running a job's test file; the file is appended "
             "(default: python -m pytest -v)",
    )
    parser.add_argument(
        "--readiness-attempts",
        type=int,
        default=None,
        help="Mock service readiness probes before moving on (default: 20)",
    )
    parser.add_argument(
        "--readiness-interval",
        type=float,
        default=None,
        help="Seconds between readiness probes (default: 1.0)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write a report file (YAML for .yaml/.yml, JSON otherwise)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Set TFTEST_DEBUG=true for every job process",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Print orchestrator debug messages",
    )
    return parser.parse_args(argv)


def parse_env_pairs(pairs: list[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` strings into a mapping.

    Raises:
        ConfigError: If an entry has no ``=`` or an empty key.
    """
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigError(f"invalid --env entry (expected KEY=VALUE): {pair!r}")
        env[key] = value
    return env


def build_config(args: argparse.Namespace) -> RunConfig:
    """Combine the config file (if any) with command-line overrides."""
    base = load_config(args.config_file) if args.config_file else RunConfig()

    overrides: dict[str, Any] = {}
    if args.dir is not None:
        overrides["dir"] = args.dir
    if args.services:
        overrides["services"] = tuple(args.services)
    if args.jobs_per_cpu is not None:
        overrides["jobs_per_cpu"] = args.jobs_per_cpu
    if args.test_pattern is not None:
        overrides["test_pattern"] = args.test_pattern
    if args.readiness_attempts is not None:
        overrides["readiness_attempts"] = args.readiness_attempts
    if args.readiness_interval is not None:
        overrides["readiness_interval"] = args.readiness_interval
    for name in ("mock_command", "infra_command", "test_command"):
        value = getattr(args, name)
        if value is not None:
            overrides[name] = tuple(shlex.split(value))

    env = dict(base.env)
    env.update(parse_env_pairs(args.env))
    if args.debug:
        env["TFTEST_DEBUG"] = "true"
    overrides["env"] = env

    return dataclasses.replace(base, **overrides)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    console = Console(verbose=args.verbose)

    try:
        config = build_config(args)
        return run(config, console, output=args.output)
    except (ConfigError, DiscoveryError, OSError) as e:
        console.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
