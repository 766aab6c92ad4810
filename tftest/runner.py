"""Top-level run: normalize, discover, schedule, clean up, report.

Configuration and discovery errors abort the whole run by raising.
Everything that goes wrong inside a job stays with that job and shows up
in the report; the return value is the process exit status.
"""

from __future__ import annotations

from pathlib import Path

from tftest.config.run_config import RunConfig, normalize_config
from tftest.console import Console
from tftest.discovery.jobs import discover_jobs
from tftest.execution.cancellation import CancellationWatcher
from tftest.execution.cleanup import cleanup_job
from tftest.execution.pipeline import Pipeline
from tftest.execution.platform import ProcessKiller, get_process_killer
from tftest.execution.scheduler import Scheduler
from tftest.reporting.reporter import Reporter


def run(
    config: RunConfig | None,
    console: Console | None = None,
    output: Path | None = None,
    watcher: CancellationWatcher | None = None,
    killer: ProcessKiller | None = None,
) -> int:
    """Run every job found under ``config.dir``.

    Args:
        config: Run configuration; normalized here.
        console: Output sink. Defaults to the process's stdout/stderr.
        output: Optional report file (YAML for .yaml/.yml, else JSON).
        watcher: Cancellation source. Defaults to SIGINT/SIGTERM.
        killer: Process-tree termination strategy for the host.

    Returns:
        0 if every job succeeded, 1 otherwise. A report file that cannot
        be written is shown as an error but does not change the status.

    Raises:
        ConfigError: If ``config`` is missing.
        DiscoveryError: If the job tree cannot be walked.
    """
    console = console or Console()
    cfg = normalize_config(config)
    killer = killer or get_process_killer()

    jobs = discover_jobs(cfg.dir, cfg.env_entries, console, pattern=cfg.test_pattern)
    console.debug(f"discovered {len(jobs)} job(s) under {cfg.dir}")

    pipeline = Pipeline(cfg, console, killer)
    scheduler = Scheduler(
        pipeline.run,
        capacity=cfg.max_parallel,
        console=console,
        watcher=watcher,
    )
    scheduler.run(jobs)

    # cleanup first so output from killed processes lands before the table
    for job in jobs:
        cleanup_job(
            job,
            killer,
            console,
            attempts=cfg.cleanup_attempts,
            delay=cfg.cleanup_delay,
        )

    reporter = Reporter()
    reporter.add_jobs(jobs)
    reporter.set_run_info(
        capacity=scheduler.capacity,
        peak_in_flight=scheduler.peak_in_flight,
        cancelled=scheduler.cancelled,
    )
    reporter.print_summary(console)

    # a missing report file is not a job failure; the exit status stays job-based
    if output is not None:
        try:
            reporter.write(output)
        except OSError as e:
            console.error(f"failed to write report: {output} -> {e}")
        else:
            console.info(f"Report written to: {output}")

    return reporter.exit_code
