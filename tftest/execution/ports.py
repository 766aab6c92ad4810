"""Ephemeral port allocation for per-job mock services."""

from __future__ import annotations

import socket

LOOPBACK = "127.0.0.1"


def allocate_port() -> int:
    """Return a TCP port that is currently free on the loopback interface.

    The listening socket is released before returning, so another process
    may grab the port first. The mock service then fails to bind, which
    surfaces later in the pipeline like any other start failure.

    Raises:
        OSError: If no socket can be bound.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((LOOPBACK, 0))
        sock.listen(1)
        return sock.getsockname()[1]
