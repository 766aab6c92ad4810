"""Interrupt/termination watcher for a run.

The first SIGINT or SIGTERM (or an explicit ``request()``) marks the run
cancelled. The scheduler races this against its own completion and stops
waiting for outstanding jobs; in-flight stages are left to cleanup.
"""

from __future__ import annotations

import asyncio
import signal
import threading
from typing import Any

from tftest.console import Console

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class CancellationWatcher:
    """Turns process signals into a one-shot cancellation request."""

    def __init__(
        self,
        console: Console,
        signals: tuple[signal.Signals, ...] = DEFAULT_SIGNALS,
    ) -> None:
        self.console = console
        self.signals = signals
        self.reason: str | None = None
        self._requested = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._event: asyncio.Event | None = None
        self._loop_handlers: list[signal.Signals] = []
        self._previous_handlers: dict[signal.Signals, Any] = {}

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind to ``loop`` and start listening for signals.

        Must be called from inside the running loop.
        """
        self._loop = loop
        self._event = asyncio.Event()
        if self._requested.is_set():
            self._event.set()

        for sig in self.signals:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
                self._loop_handlers.append(sig)
            except NotImplementedError:
                # no loop signal support (Windows): plain handler, hop onto the loop
                self._previous_handlers[sig] = signal.signal(
                    sig, lambda signum, frame: self._on_signal(signal.Signals(signum))
                )
            except (ValueError, RuntimeError) as e:
                self.console.debug(f"cannot watch {sig.name} here: {e}")

    def remove(self) -> None:
        """Restore signal handling to what it was before ``install``."""
        if self._loop is not None:
            for sig in self._loop_handlers:
                self._loop.remove_signal_handler(sig)
        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous)
        self._loop_handlers.clear()
        self._previous_handlers.clear()
        self._loop = None
        self._event = None

    def request(self, reason: str = "cancellation requested") -> None:
        """Request cancellation; safe to call from any thread."""
        if self._requested.is_set():
            return
        self.reason = reason
        self._requested.set()
        loop, event = self._loop, self._event
        if loop is not None and event is not None and not loop.is_closed():
            loop.call_soon_threadsafe(event.set)

    async def wait(self) -> None:
        """Return once cancellation has been requested."""
        if self._event is None:
            raise RuntimeError("CancellationWatcher.install() was not called")
        await self._event.wait()

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._requested.is_set():
            return
        self.console.info(f"interrupt received: {sig.name}")
        self.request(f"interrupt received: {sig.name}")
