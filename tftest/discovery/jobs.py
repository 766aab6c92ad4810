"""Discover test jobs beneath a root directory.

Every directory below the root that directly contains at least one file
matching the test-file pattern becomes a Job. The root itself never
qualifies. Directories are visited in sorted order so discovery, and
therefore admission order, is deterministic.
"""

from __future__ import annotations

import fnmatch
import os
from typing import Sequence

from tftest.config.run_config import DEFAULT_TEST_PATTERN
from tftest.console import Console
from tftest.job import PROVIDER_FILE_NAME, Job


class DiscoveryError(RuntimeError):
    """Raised when the directory tree cannot be walked."""


def find_test_files(filenames: Sequence[str], pattern: str) -> list[str]:
    """Return the names in ``filenames`` matching ``pattern``, sorted."""
    return sorted(name for name in filenames if fnmatch.fnmatchcase(name, pattern))


def discover_jobs(
    root: str,
    env: Sequence[str],
    console: Console,
    pattern: str = DEFAULT_TEST_PATTERN,
) -> list[Job]:
    """Walk ``root`` and build one Job per qualifying directory.

    Args:
        root: Root directory to walk.
        env: ``KEY=VALUE`` entries given to every job's processes.
        console: Sink the jobs relay their child output to.
        pattern: Test-file glob matched directly inside each directory.

    Returns:
        Jobs in walk order. An empty list is not an error.

    Raises:
        DiscoveryError: If the root or any directory under it cannot be
            read.
    """
    base = os.path.abspath(root)
    if not os.path.isdir(base):
        raise DiscoveryError(f"failed to access path: {base!r} -> not a directory")

    def _on_error(err: OSError) -> None:
        raise DiscoveryError(
            f"failed to access path: {err.filename!r} -> {err.strerror or err}"
        ) from err

    jobs: list[Job] = []
    for dirpath, dirnames, filenames in os.walk(base, onerror=_on_error):
        dirnames.sort()
        if dirpath == base:
            continue

        matches = find_test_files(filenames, pattern)
        if not matches:
            continue

        jobs.append(Job(
            name=os.path.basename(dirpath),
            root_path=base,
            path=dirpath,
            test_file=os.path.join(dirpath, matches[0]),
            provider_file=os.path.join(dirpath, PROVIDER_FILE_NAME),
            env=list(env),
            stdout=console.out,
            stderr=console.err,
        ))

    return jobs
