"""Job: one directory's worth of test work.

A Job is created by discovery, driven through its pipeline by exactly
one scheduler task, torn down by cleanup and finally read by the
reporter.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tftest.console import LineWriter

if TYPE_CHECKING:
    from tftest.execution.process import ManagedProcess

# File the orchestrator generates in every job directory
PROVIDER_FILE_NAME = "provider.tf"


class JobNotExecutedError(RuntimeError):
    """Terminal error of a job whose pipeline never ran to completion."""

    def __init__(self) -> None:
        super().__init__("job not executed")


@dataclass
class Job:
    """A discovered test directory and its runtime state."""

    name: str
    root_path: str
    path: str
    test_file: str
    provider_file: str
    env: list[str]
    stdout: LineWriter
    stderr: LineWriter
    error: BaseException | None = field(default_factory=JobNotExecutedError)
    state: str = "start"
    port: int | None = None
    started_at: float | None = None
    finished_at: float | None = None
    processes: list[ManagedProcess] = field(default_factory=list)
    closed: threading.Event = field(default_factory=threading.Event, repr=False)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def duration(self) -> float:
        """Seconds between pipeline start and finish (0.0 if not run)."""
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def begin(self) -> None:
        self.started_at = time.monotonic()

    def finish(self, error: BaseException | None) -> bool:
        """Record the terminal error once.

        Returns:
            True if this call recorded the outcome, False if an outcome
            had already been recorded.
        """
        with self._lock:
            if self._finished:
                return False
            self._finished = True
            self.error = error
            self.finished_at = time.monotonic()
            self.state = "done"
            return True

    def register(self, process: ManagedProcess) -> bool:
        """Track a started child process for cleanup.

        Returns:
            False if the job was already closed, in which case the
            caller owns the process.
        """
        with self._lock:
            if self.closed.is_set():
                return False
            self.processes.append(process)
            return True

    def close(self) -> list[ManagedProcess]:
        """Mark the job closed and drain its recorded processes."""
        with self._lock:
            self.closed.set()
            drained = list(self.processes)
            self.processes.clear()
            return drained
