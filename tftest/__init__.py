"""tftest: run infrastructure-as-code integration tests against mock clouds."""

from tftest.config.run_config import RunConfig
from tftest.runner import run

__all__ = [
    "RunConfig",
    "run",
]

__version__ = "0.1.0"
