"""Platform specific process-tree termination.

The rest of the orchestrator only sees ``ProcessKiller``: how a child is
spawned so that its whole tree can be reached, and how that tree is
killed. ``get_process_killer`` picks the strategy for the host.
"""

from __future__ import annotations

import os
import signal
import subprocess
import sys
from typing import Any


class ProcessKiller:
    """Abstract process-tree termination strategy."""

    def configure_popen(self, popen_kwargs: dict[str, Any]) -> None:
        """Mutate ``popen_kwargs`` so the child can later be killed as a tree."""

    def kill_tree(self, pid: int) -> None:
        """Forcibly terminate ``pid`` and every process it spawned."""
        raise NotImplementedError


class PosixProcessKiller(ProcessKiller):
    """Starts children in their own session and kills the process group."""

    def configure_popen(self, popen_kwargs: dict[str, Any]) -> None:
        popen_kwargs.setdefault("start_new_session", True)

    def kill_tree(self, pid: int) -> None:
        try:
            pgid = os.getpgid(pid)
        except ProcessLookupError:
            return

        try:
            if pgid == pid:
                os.killpg(pgid, signal.SIGKILL)
            else:
                os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass


class WindowsProcessKiller(ProcessKiller):
    """Uses ``taskkill /T`` to terminate the child and its descendants."""

    def configure_popen(self, popen_kwargs: dict[str, Any]) -> None:
        popen_kwargs["creationflags"] = getattr(
            subprocess, "CREATE_NEW_PROCESS_GROUP", 0
        )

    def kill_tree(self, pid: int) -> None:
        result = subprocess.run(
            ["taskkill", "/T", "/F", "/PID", str(pid)],
            capture_output=True,
            text=True,
            timeout=30,
        )
        # 128: no such process
        if result.returncode not in (0, 128):
            raise OSError(
                f"taskkill failed for pid {pid} (exit={result.returncode}): "
                f"{result.stderr.strip()}"
            )


def get_process_killer() -> ProcessKiller:
    """Return the termination strategy for the current host."""
    if sys.platform == "win32":
        return WindowsProcessKiller()
    return PosixProcessKiller()
