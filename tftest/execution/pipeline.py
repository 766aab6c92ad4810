"""Per-job pipeline: mock service, provider, infra apply, test run.

Stages run strictly in order::

    start -> port_allocated -> mock_started -> config_written
          -> ready | ready_timeout -> infra_initialized -> infra_applied
          -> test_executed -> done

The mock service keeps running in the background for the whole job;
every other process is waited on before the next stage starts. The first
failing stage ends the job with a StageError naming that stage.
"""

from __future__ import annotations

from dataclasses import dataclass

from tftest.config.run_config import RunConfig
from tftest.console import Console, job_line
from tftest.execution.platform import ProcessKiller, get_process_killer
from tftest.execution.ports import allocate_port
from tftest.execution.process import ProcessStartError, start_process
from tftest.execution.provider import write_provider
from tftest.execution.readiness import endpoint_url, wait_until_ready
from tftest.job import Job

# Environment variable carrying the mock service port to child processes
PORT_ENV = "MOTO_PORT"


@dataclass(eq=False)
class StageError(Exception):
    """A job failed at one pipeline stage.

    ``stage`` is one of port, mock, provider, init, apply or test. Only a
    failure in the test stage is a genuine test failure; the rest are
    infrastructure errors.
    """

    job: str
    stage: str
    message: str
    exit_code: int | None = None

    def __str__(self) -> str:
        return f"{self.stage}: {self.message}"

    @property
    def category(self) -> str:
        return "test" if self.stage == "test" else "infrastructure"


class Pipeline:
    """Runs the stage sequence for one job at a time.

    A single Pipeline is shared by all scheduler tasks; it holds only
    run-wide settings, and all mutable state lives on the Job.
    """

    def __init__(
        self,
        config: RunConfig,
        console: Console,
        killer: ProcessKiller | None = None,
    ) -> None:
        self.config = config
        self.console = console
        self.killer = killer or get_process_killer()

    def run(self, job: Job) -> None:
        """Execute every stage for ``job`` and record its terminal error."""
        job.begin()
        try:
            self._execute(job)
        except StageError as e:
            self.console.info(job_line(job.name, f"FAILED at {e.stage}: {e.message}"))
            job.finish(e)
            return
        job.finish(None)

    def _execute(self, job: Job) -> None:
        port = self._allocate_port(job)
        self._start_mock(job, port)
        self._write_provider(job, port)
        self._wait_for_mock(job, port)

        infra = list(self.config.infra_command)
        self._run_step(job, "init", infra + ["init", "-no-color"])
        job.state = "infra_initialized"
        self._run_step(job, "apply", infra + ["apply", "-auto-approve", "-no-color"])
        job.state = "infra_applied"

        self._run_step(job, "test", list(self.config.test_command) + [job.test_file])
        job.state = "test_executed"

    def _allocate_port(self, job: Job) -> int:
        try:
            port = allocate_port()
        except OSError as e:
            raise StageError(job.name, "port", f"failed to allocate a port: {e}") from e
        job.port = port
        job.state = "port_allocated"
        self.console.debug(job_line(job.name, f"allocated port {port}"))
        return port

    def _start_mock(self, job: Job, port: int) -> None:
        job.env.append(f"{PORT_ENV}={port}")
        argv = list(self.config.mock_command) + ["-p", str(port)]
        try:
            start_process(job, argv, self.killer)
        except ProcessStartError as e:
            raise StageError(job.name, "mock", str(e)) from e
        job.state = "mock_started"

    def _write_provider(self, job: Job, port: int) -> None:
        try:
            write_provider(job.provider_file, self.config.services, port)
        except OSError as e:
            raise StageError(
                job.name,
                "provider",
                f"failed to write provider at: {job.provider_file!r} -> {e}",
            ) from e
        job.state = "config_written"

    def _wait_for_mock(self, job: Job, port: int) -> None:
        self.console.info(job_line(job.name, "waiting for mock service to start..."))
        ready = wait_until_ready(
            endpoint_url(port),
            attempts=self.config.readiness_attempts,
            interval=self.config.readiness_interval,
            log=lambda message: self.console.info(job_line(job.name, message)),
            warn=lambda message: self.console.warn(job_line(job.name, message)),
            stop=job.closed,
        )
        job.state = "ready" if ready else "ready_timeout"

    def _run_step(self, job: Job, stage: str, argv: list[str]) -> None:
        """Start ``argv`` and wait for it; non-zero exit fails ``stage``."""
        self.console.debug(job_line(job.name, f"{stage}: {' '.join(argv)}"))
        try:
            process = start_process(job, argv, self.killer)
        except ProcessStartError as e:
            raise StageError(job.name, stage, str(e)) from e

        code = process.wait()
        if code == 0:
            return
        if stage == "test":
            message = f"test {job.test_file} exited with status {code}"
        else:
            message = f"{process.name} {stage} exited with status {code}"
        raise StageError(job.name, stage, message, exit_code=code)
