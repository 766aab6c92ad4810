"""Child process runner with job-tagged output relaying.

``start_process`` launches a command in a job's directory with the job's
environment, registers the handle on the job so cleanup can find it, and
drains stdout and stderr on two relay threads that prefix every line
with ``[<job name>]: ``.
"""

from __future__ import annotations

import os
import subprocess
import threading
import time
from typing import IO, Sequence

from tftest.console import LineWriter, job_line
from tftest.execution.platform import ProcessKiller
from tftest.job import Job


# Seconds to wait for output relays once the process itself has exited.
# Descendants that inherited the pipes may keep them open much longer.
RELAY_DRAIN_TIMEOUT = 2.0


class ProcessStartError(RuntimeError):
    """Raised when a child process cannot be started."""


class ManagedProcess:
    """A started child process plus the threads relaying its output."""

    def __init__(
        self,
        argv: Sequence[str],
        popen: subprocess.Popen[str],
        relays: list[threading.Thread],
    ) -> None:
        self.argv = list(argv)
        self.popen = popen
        self.relays = relays

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def name(self) -> str:
        return os.path.basename(self.argv[0])

    @property
    def has_exited(self) -> bool:
        return self.popen.poll() is not None

    @property
    def returncode(self) -> int | None:
        return self.popen.poll()

    def wait(self, drain_timeout: float = RELAY_DRAIN_TIMEOUT) -> int:
        """Block until the process exits and its output has been relayed.

        Relays still running after ``drain_timeout`` seconds (a background
        child holding the pipes open) keep draining on their own.

        Returns:
            The process exit code.
        """
        code = self.popen.wait()
        self._join_relays(timeout=drain_timeout)
        return code

    def terminate(self, killer: ProcessKiller, timeout: float = 10.0) -> bool:
        """Kill the process tree unless the process already exited.

        Returns:
            True if a kill was issued, False if the process had exited.
        """
        if self.has_exited:
            return False
        killer.kill_tree(self.pid)
        try:
            self.popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self.popen.kill()
            self.popen.wait(timeout=timeout)
        self._join_relays(timeout=timeout)
        return True

    def _join_relays(self, timeout: float | None = None) -> None:
        """Join every relay, sharing one ``timeout`` across all of them."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for relay in self.relays:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
            relay.join(remaining)


def build_env(entries: Sequence[str]) -> dict[str, str]:
    """Return the inherited environment with ``KEY=VALUE`` entries applied."""
    env = os.environ.copy()
    for entry in entries:
        key, _, value = entry.partition("=")
        env[key] = value
    return env


def _relay(name: str, stream: IO[str], sink: LineWriter) -> None:
    """Copy ``stream`` to ``sink`` line by line, tagging each line."""
    with stream:
        for line in stream:
            sink.write_line(job_line(name, line.rstrip("\r\n")))


def start_process(
    job: Job,
    argv: Sequence[str],
    killer: ProcessKiller,
) -> ManagedProcess:
    """Start ``argv`` for ``job`` and relay its output.

    Returns as soon as the process has started; the caller decides
    whether to wait on it.

    Args:
        job: Owning job; supplies cwd, environment and output sinks.
        argv: Executable and arguments.
        killer: Strategy used to spawn the child as a killable tree.

    Returns:
        The registered process handle.

    Raises:
        ProcessStartError: If the executable cannot be started or the
            job was already closed by cleanup.
    """
    if job.closed.is_set():
        raise ProcessStartError(f"failed to start process: {argv[0]} -> job is closed")

    popen_kwargs: dict = {
        "cwd": job.path,
        "env": build_env(job.env),
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.PIPE,
        "stderr": subprocess.PIPE,
        "text": True,
        "encoding": "utf-8",
        "errors": "replace",
        "bufsize": 1,
    }
    killer.configure_popen(popen_kwargs)

    try:
        popen = subprocess.Popen(list(argv), **popen_kwargs)
    except OSError as e:
        raise ProcessStartError(f"failed to start process: {argv[0]} -> {e}") from e

    relays = [
        threading.Thread(
            target=_relay,
            args=(job.name, popen.stdout, job.stdout),
            name=f"{job.name}-stdout",
            daemon=True,
        ),
        threading.Thread(
            target=_relay,
            args=(job.name, popen.stderr, job.stderr),
            name=f"{job.name}-stderr",
            daemon=True,
        ),
    ]
    for relay in relays:
        relay.start()

    process = ManagedProcess(argv, popen, relays)
    if not job.register(process):
        # cleanup already ran for this job; nothing else will reap it
        process.terminate(killer)
        raise ProcessStartError(f"failed to start process: {argv[0]} -> job is closed")
    return process
