"""Readiness probe for a freshly started mock service."""

from __future__ import annotations

import http.client
import threading
import urllib.error
import urllib.request
from typing import Callable

ENDPOINT_URL = "http://localhost:{port}"

# The mock listens on loopback; proxy settings from the environment never apply
_OPENER = urllib.request.build_opener(urllib.request.ProxyHandler({}))


def endpoint_url(port: int) -> str:
    """Return the loopback URL a mock service on ``port`` answers at."""
    return ENDPOINT_URL.format(port=port)


def probe(url: str, timeout: float = 5.0) -> bool:
    """Issue one GET against ``url``.

    Any completed HTTP exchange counts as success, whatever its status
    code. A failure to connect, a timeout, or a reply that is not valid
    HTTP counts as not ready.
    """
    try:
        with _OPENER.open(url, timeout=timeout) as resp:
            resp.read()
    except urllib.error.HTTPError as e:
        e.close()
        return True
    except (urllib.error.URLError, http.client.HTTPException, OSError):
        return False
    return True


def wait_until_ready(
    url: str,
    *,
    attempts: int = 20,
    interval: float = 1.0,
    log: Callable[[str], None] | None = None,
    warn: Callable[[str], None] | None = None,
    stop: threading.Event | None = None,
) -> bool:
    """Poll ``url`` until it answers or ``attempts`` are exhausted.

    Sleeps ``interval`` seconds before every attempt. Exhaustion is not an
    error: the caller carries on and lets the next stage report the
    failure.

    Args:
        url: Base URL of the mock service.
        attempts: Maximum number of GET attempts.
        interval: Seconds to wait before each attempt.
        log: Receives progress messages.
        warn: Receives the exhaustion warning; defaults to ``log``.
        stop: When set, polling ends early without success.

    Returns:
        True if the service answered, False otherwise.
    """
    stop = stop or threading.Event()
    for attempt in range(1, attempts + 1):
        if stop.wait(interval):
            return False
        if probe(url, timeout=max(interval, 1.0)):
            return True
        if log is not None:
            log(f"waiting for mock service to start (attempt {attempt}/{attempts})")

    warn = warn or log
    if warn is not None:
        warn(f"mock service at {url} not reachable after {attempts} attempts; continuing")
    return False
