"""Job execution: process management, per-job pipeline and scheduling."""

from tftest.execution.cancellation import CancellationWatcher
from tftest.execution.cleanup import cleanup_job
from tftest.execution.pipeline import Pipeline, StageError
from tftest.execution.process import ManagedProcess, ProcessStartError, start_process
from tftest.execution.scheduler import Scheduler

__all__ = [
    "CancellationWatcher",
    "ManagedProcess",
    "Pipeline",
    "ProcessStartError",
    "Scheduler",
    "StageError",
    "cleanup_job",
    "start_process",
]
