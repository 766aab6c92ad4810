"""Job result reporting: console summary plus JSON/YAML report files.

Every job ends in one of three outcomes: succeeded, failed (at a named
pipeline stage) or not executed (never admitted before cancellation).
Failures are further split into test failures and infrastructure
failures so CI output can tell a broken test from a broken environment.
"""

from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any

import yaml

from tftest.console import Console
from tftest.execution.pipeline import StageError
from tftest.job import Job, JobNotExecutedError

RESULTS_HEADER = "===== Job Results ====="


def job_category(job: Job) -> str:
    """Classify a job's terminal error.

    Returns:
        One of ``success``, ``test``, ``infrastructure``,
        ``not_executed`` or ``error`` (an unexpected exception).
    """
    if job.error is None:
        return "success"
    if isinstance(job.error, StageError):
        return job.error.category
    if isinstance(job.error, JobNotExecutedError):
        return "not_executed"
    return "error"


class Reporter:
    """Collects finished jobs and renders them for people and machines."""

    def __init__(self) -> None:
        self.jobs: list[Job] = []
        self.capacity: int | None = None
        self.peak_in_flight: int | None = None
        self.cancelled = False

    def add_job(self, job: Job) -> None:
        self.jobs.append(job)

    def add_jobs(self, jobs: list[Job]) -> None:
        self.jobs.extend(jobs)

    def set_run_info(
        self,
        capacity: int | None = None,
        peak_in_flight: int | None = None,
        cancelled: bool = False,
    ) -> None:
        """Record scheduler facts shown in the report header.

        Args:
            capacity: Admission gate size used for the run.
            peak_in_flight: Highest concurrency actually reached.
            cancelled: Whether the run stopped on a cancellation request.
        """
        self.capacity = capacity
        self.peak_in_flight = peak_in_flight
        self.cancelled = cancelled

    @property
    def has_failures(self) -> bool:
        return any(job.error is not None for job in self.jobs)

    @property
    def exit_code(self) -> int:
        return 1 if self.has_failures else 0

    def print_summary(self, console: Console) -> None:
        """Print one line per job, then a totals line."""
        console.info("")
        console.info(RESULTS_HEADER)
        for job in self.jobs:
            if job.error is not None:
                console.info(f"{job.name:<20}{'FAILED':<15}{job.error}")
            else:
                console.info(f"{job.name:<20}{'SUCCESS':<15}")

        summary = self._compute_summary()
        console.info("")
        console.info(
            f"Results: {summary['succeeded']} succeeded, {summary['failed']} failed"
            + (f", {summary['not_executed']} not executed" if summary["not_executed"] else "")
        )

    def generate_report(self) -> dict[str, Any]:
        """Build the report data structure.

        Returns:
            Dictionary suitable for JSON or YAML serialization.
        """
        now = datetime.datetime.now(tz=datetime.timezone.utc).isoformat()
        report: dict[str, Any] = {
            "generated_at": now,
            "cancelled": self.cancelled,
            "summary": self._compute_summary(),
            "jobs": [self._format_job(job) for job in self.jobs],
        }
        if self.capacity is not None:
            report["capacity"] = self.capacity
        if self.peak_in_flight is not None:
            report["peak_in_flight"] = self.peak_in_flight
        return {"report": report}

    def write_json(self, path: Path) -> None:
        """Write the report as a JSON file."""
        report = self.generate_report()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(report, f, indent=2)

    def write_yaml(self, path: Path) -> None:
        """Write the report as a YAML file."""
        report = self.generate_report()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(
                report,
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

    def write(self, path: Path) -> None:
        """Write YAML for ``.yaml``/``.yml`` paths, JSON otherwise."""
        if path.suffix.lower() in (".yaml", ".yml"):
            self.write_yaml(path)
        else:
            self.write_json(path)

    def _compute_summary(self) -> dict[str, int]:
        categories = [job_category(job) for job in self.jobs]
        succeeded = categories.count("success")
        return {
            "total": len(self.jobs),
            "succeeded": succeeded,
            "failed": len(self.jobs) - succeeded,
            "test_failures": categories.count("test"),
            "infrastructure_failures": categories.count("infrastructure"),
            "not_executed": categories.count("not_executed"),
        }

    def _format_job(self, job: Job) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "name": job.name,
            "path": job.path,
            "test_file": job.test_file,
            "status": "SUCCESS" if job.error is None else "FAILED",
            "category": job_category(job),
            "state": job.state,
            "duration": round(job.duration, 3),
        }
        if isinstance(job.error, StageError):
            entry["stage"] = job.error.stage
            if job.error.exit_code is not None:
                entry["exit_code"] = job.error.exit_code
        if job.error is not None:
            entry["error"] = str(job.error)
        return entry
