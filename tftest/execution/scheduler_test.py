"""Tests for the bounded-concurrency scheduler."""

from __future__ import annotations

import io
import threading
import time

import pytest

from tftest.console import Console, LineWriter
from tftest.execution.cancellation import CancellationWatcher
from tftest.execution.scheduler import Scheduler
from tftest.job import Job, JobNotExecutedError


def _jobs(count: int) -> list[Job]:
    sink = LineWriter(io.StringIO())
    return [
        Job(
            name=f"job{i}",
            root_path="/root",
            path=f"/root/job{i}",
            test_file=f"/root/job{i}/job{i}_test.py",
            provider_file=f"/root/job{i}/provider.tf",
            env=[],
            stdout=sink,
            stderr=sink,
        )
        for i in range(count)
    ]


def _console() -> tuple[Console, io.StringIO, io.StringIO]:
    out, err = io.StringIO(), io.StringIO()
    return Console(stdout=out, stderr=err), out, err


class _Counter:
    """Pipeline stand-in that records concurrency."""

    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self.lock = threading.Lock()
        self.current = 0
        self.peak = 0
        self.order: list[str] = []

    def __call__(self, job: Job) -> None:
        job.begin()
        with self.lock:
            self.current += 1
            self.peak = max(self.peak, self.current)
            self.order.append(job.name)
        time.sleep(self.delay)
        with self.lock:
            self.current -= 1
        job.finish(None)


class TestScheduler:
    """Tests for admission and completion."""

    def test_concurrency_bounded(self):
        """No more than capacity jobs ever run at once."""
        console, _, _ = _console()
        counter = _Counter()
        jobs = _jobs(12)
        scheduler = Scheduler(
            counter, capacity=3, console=console, watcher=CancellationWatcher(console, signals=())
        )

        assert scheduler.run(jobs) is True

        assert counter.peak <= 3
        assert 1 <= scheduler.peak_in_flight <= 3
        assert scheduler.in_flight == 0
        assert all(job.error is None for job in jobs)
        assert scheduler.cancelled is False

    def test_capacity_one_keeps_order(self):
        """With a single slot jobs run one at a time in discovery order."""
        console, _, _ = _console()
        counter = _Counter(delay=0.0)
        jobs = _jobs(5)
        scheduler = Scheduler(
            counter, capacity=1, console=console, watcher=CancellationWatcher(console, signals=())
        )

        scheduler.run(jobs)

        assert counter.order == [job.name for job in jobs]
        assert counter.peak == 1
        assert scheduler.peak_in_flight == 1

    def test_admission_in_discovery_order(self):
        """Jobs are admitted in the order given."""
        console, _, _ = _console()
        jobs = _jobs(6)
        scheduler = Scheduler(
            _Counter(delay=0.0), capacity=2, console=console,
            watcher=CancellationWatcher(console, signals=()),
        )
        scheduler.run(jobs)
        assert scheduler.admitted == jobs

    def test_crash_recorded_on_job(self):
        """An exception escaping a pipeline becomes that job's error."""
        console, _, err = _console()
        jobs = _jobs(3)
        crash = RuntimeError("kaboom")

        def run_job(job: Job) -> None:
            if job.name == "job1":
                raise crash
            job.finish(None)

        scheduler = Scheduler(
            run_job, capacity=2, console=console, watcher=CancellationWatcher(console, signals=())
        )
        assert scheduler.run(jobs) is True

        assert jobs[0].error is None
        assert jobs[1].error is crash
        assert jobs[2].error is None
        assert "Error: [job1]: pipeline crashed" in err.getvalue()

    def test_empty(self):
        """An empty job list completes immediately."""
        console, _, _ = _console()
        scheduler = Scheduler(_Counter(), capacity=1, console=console)
        assert scheduler.run([]) is True
        assert scheduler.admitted == []

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity):
        """Capacity below one is rejected."""
        console, _, _ = _console()
        with pytest.raises(ValueError):
            Scheduler(_Counter(), capacity=capacity, console=console)


class TestSchedulerCancellation:
    """Tests for racing completion against cancellation."""

    def test_cancel_before_start_admits_nothing(self):
        """A run cancelled up front leaves every job not executed."""
        console, _, _ = _console()
        watcher = CancellationWatcher(console, signals=())
        watcher.request("test")
        jobs = _jobs(4)
        scheduler = Scheduler(_Counter(), capacity=2, console=console, watcher=watcher)

        scheduler.run(jobs)

        assert scheduler.admitted == []
        assert all(isinstance(job.error, JobNotExecutedError) for job in jobs)

    def test_cancel_mid_run(self):
        """Cancellation stops admission and abandons in-flight jobs."""
        console, out, _ = _console()
        watcher = CancellationWatcher(console, signals=())
        release = threading.Event()
        jobs = _jobs(6)

        def run_job(job: Job) -> None:
            job.begin()
            if job.name == "job1":
                watcher.request("test")
            release.wait(10)
            job.finish(None)

        scheduler = Scheduler(run_job, capacity=2, console=console, watcher=watcher)
        try:
            start = time.monotonic()
            assert scheduler.run(jobs) is False
            assert time.monotonic() - start < 10
        finally:
            release.set()

        assert scheduler.cancelled is True
        assert [job.name for job in scheduler.admitted] == ["job0", "job1"]
        assert all(isinstance(job.error, JobNotExecutedError) for job in jobs[2:])
        assert "cancelled: not waiting for" in out.getvalue()
