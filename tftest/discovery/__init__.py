"""Job discovery: one job per directory holding a test file."""

from tftest.discovery.jobs import DiscoveryError, discover_jobs

__all__ = [
    "DiscoveryError",
    "discover_jobs",
]
