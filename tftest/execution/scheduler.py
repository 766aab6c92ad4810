"""Bounded-concurrency job scheduler.

Jobs are admitted in discovery order through a semaphore of fixed
capacity; each admitted job's pipeline runs on a worker thread so its
blocking process waits never stall the event loop. Completion of every
admitted job races against the cancellation watcher.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence

from tftest.console import Console, job_line
from tftest.execution.cancellation import CancellationWatcher
from tftest.job import Job


class Scheduler:
    """Runs one pipeline task per job with at most ``capacity`` in flight.

    Attributes:
        capacity: Admission gate size.
        in_flight: Jobs currently holding a gate unit.
        peak_in_flight: Highest ``in_flight`` observed during the run.
        admitted: Jobs whose pipeline was started, in admission order.
        cancelled: True if the run stopped on a cancellation request.
    """

    def __init__(
        self,
        run_job: Callable[[Job], None],
        capacity: int,
        console: Console,
        watcher: CancellationWatcher | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.run_job = run_job
        self.capacity = capacity
        self.console = console
        self.watcher = watcher or CancellationWatcher(console)
        self.in_flight = 0
        self.peak_in_flight = 0
        self.admitted: list[Job] = []
        self.cancelled = False

    def run(self, jobs: Sequence[Job]) -> bool:
        """Run every job's pipeline.

        Returns:
            True if all admitted jobs completed, False if cancellation
            won the race.
        """
        if not jobs:
            return True
        return asyncio.run(self._run_async(list(jobs)))

    async def _run_async(self, jobs: list[Job]) -> bool:
        loop = asyncio.get_running_loop()
        gate = asyncio.Semaphore(self.capacity)
        pool = ThreadPoolExecutor(
            max_workers=self.capacity, thread_name_prefix="tftest-job"
        )

        async def run_one(job: Job) -> None:
            try:
                await loop.run_in_executor(pool, self.run_job, job)
            finally:
                self.in_flight -= 1
                gate.release()

        async def admit_all() -> None:
            tasks: list[asyncio.Task[None]] = []
            try:
                for job in jobs:
                    await gate.acquire()
                    if self.watcher.requested:
                        gate.release()
                        break
                    self.in_flight += 1
                    self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
                    self.admitted.append(job)
                    tasks.append(asyncio.create_task(run_one(job)))

                results = await asyncio.gather(*tasks, return_exceptions=True)
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                raise

            for job, result in zip(self.admitted, results):
                if isinstance(result, BaseException):
                    self.console.error(job_line(job.name, f"pipeline crashed: {result!r}"))
                    job.finish(result)

        self.watcher.install(loop)
        completion = asyncio.create_task(admit_all())
        cancellation = asyncio.create_task(self.watcher.wait())
        try:
            await asyncio.wait(
                {completion, cancellation}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            self.watcher.remove()

        cancellation.cancel()
        if completion.done():
            pool.shutdown(wait=True)
            # surface scheduler bugs rather than reporting a partial run
            completion.result()
            return True

        self.cancelled = True
        completion.cancel()
        await asyncio.gather(completion, return_exceptions=True)
        pool.shutdown(wait=False, cancel_futures=True)
        outstanding = len(jobs) - sum(1 for job in jobs if job.finished)
        self.console.info(
            f"cancelled: not waiting for {outstanding} outstanding job(s)"
        )
        return False
