"""Line-oriented console output shared by all concurrently running jobs."""

from __future__ import annotations

import sys
import threading
from typing import TextIO


class LineWriter:
    """Writes complete lines to a text stream.

    Each line is written and flushed under a lock so output relayed from
    many jobs at once interleaves by line and never inside one.
    """

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self._lock = threading.Lock()

    def write_line(self, line: str) -> None:
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()


class Console:
    """Output sink passed explicitly to every component of a run.

    Args:
        stdout: Stream for progress and relayed child stdout. Defaults
            to ``sys.stdout``.
        stderr: Stream for warnings, errors and relayed child stderr.
            Defaults to ``sys.stderr``.
        verbose: Emit ``debug`` messages when True.
    """

    def __init__(
        self,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        verbose: bool = False,
    ) -> None:
        self.out = LineWriter(stdout if stdout is not None else sys.stdout)
        self.err = LineWriter(stderr if stderr is not None else sys.stderr)
        self.verbose = verbose

    def info(self, message: str) -> None:
        self.out.write_line(message)

    def warn(self, message: str) -> None:
        self.err.write_line(f"Warning: {message}")

    def error(self, message: str) -> None:
        self.err.write_line(f"Error: {message}")

    def debug(self, message: str) -> None:
        if self.verbose:
            self.err.write_line(f"Debug: {message}")


def job_line(name: str, text: str) -> str:
    """Tag ``text`` with the owning job's name."""
    return f"[{name}]: {text}"
