"""Job teardown: kill leftover processes, remove generated artifacts.

Cleanup is safe to call at any point in a job's life and any number of
times. Failures are reported on the console and never change the job's
terminal error.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time
from typing import Callable, TypeVar

from tftest.console import Console, job_line
from tftest.execution.platform import ProcessKiller
from tftest.job import Job

# Infra tool leftovers in a job directory
STATE_FILE = "terraform.tfstate"
LOCK_FILE = ".terraform.tfstate.lock.info"
CACHE_DIR = ".terraform"

T = TypeVar("T")


def retry(fn: Callable[[], T], attempts: int = 10, delay: float = 0.1) -> T:
    """Call ``fn`` until it succeeds, up to ``attempts`` times.

    Raises:
        OSError: The last error if every attempt failed.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except OSError:
            if attempt == attempts:
                raise
            time.sleep(delay)
    raise ValueError("attempts must be at least 1")


def remove_path(path: str) -> None:
    """Remove a file or directory tree; a missing path is success."""
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
    except FileNotFoundError:
        pass


def artifact_paths(job: Job) -> list[str]:
    """Return every generated path cleanup removes for ``job``."""
    job_dir = os.path.dirname(job.provider_file)
    return [
        job.provider_file,
        os.path.join(job_dir, STATE_FILE),
        os.path.join(job_dir, LOCK_FILE),
        os.path.join(job_dir, CACHE_DIR),
    ]


def terminate_processes(job: Job, killer: ProcessKiller, console: Console) -> int:
    """Close ``job`` and kill its still running processes.

    Returns:
        Number of processes a kill was issued for.
    """
    killed = 0
    for process in job.close():
        try:
            if process.terminate(killer):
                killed += 1
        except (OSError, subprocess.SubprocessError) as e:
            console.warn(job_line(job.name, f"failed to kill process: {process.name} -> {e}"))
    return killed


def cleanup_job(
    job: Job,
    killer: ProcessKiller,
    console: Console,
    attempts: int = 10,
    delay: float = 0.1,
) -> bool:
    """Tear down ``job``: processes first, then generated files.

    Returns:
        True if every artifact was removed.
    """
    killed = terminate_processes(job, killer, console)
    if killed:
        console.debug(job_line(job.name, f"terminated {killed} process(es)"))

    clean = True
    for path in artifact_paths(job):
        try:
            retry(lambda: remove_path(path), attempts=attempts, delay=delay)
        except OSError as e:
            clean = False
            console.warn(job_line(job.name, f"failed to cleanup: {path} -> {e}"))
    return clean
