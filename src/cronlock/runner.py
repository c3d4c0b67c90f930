"""Shell command handler for scheduled jobs."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cronlock.models import JobConfig, JobsFile

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one job command run."""

    name: str
    status: str  # success, error, timeout
    exit_code: int | None
    stdout: str
    stderr: str
    started_at: datetime
    duration_ms: int


class CommandRunner:
    """Scheduler handler that runs the shell command configured for a job.

    Overlapping runs of the same job are not prevented.
    """

    def __init__(self, jobs: JobsFile, timeout: float | None = None) -> None:
        """Initialize the runner.

        Args:
            jobs: Jobs whose commands may be run.
            timeout: Seconds a command may run before it is killed.
        """
        self._jobs = jobs
        self._timeout = timeout

    def __call__(self, name: str) -> CommandResult | None:
        job = self._jobs.get_job(name)
        if job is None:
            logger.warning(f"No command configured for job '{name}'")
            return None
        return self.run(job)

    def run(self, job: JobConfig) -> CommandResult:
        """Run a job command and wait for it.

        Args:
            job: The job to run.

        Returns:
            CommandResult describing the run.
        """
        started_at = datetime.now()
        start = time.monotonic()
        logger.info(f"Running job '{job.name}': {job.command}")

        try:
            proc = subprocess.run(
                job.command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                env={**os.environ, "CRONLOCK_JOB": job.name},
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Job '{job.name}' timed out after {self._timeout}s")
            return CommandResult(
                name=job.name,
                status="timeout",
                exit_code=None,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                started_at=started_at,
                duration_ms=_elapsed_ms(start),
            )

        status = "success" if proc.returncode == 0 else "error"
        if status == "success":
            logger.info(f"Job '{job.name}' completed")
        else:
            logger.error(
                f"Job '{job.name}' exited with code {proc.returncode}: {proc.stderr.strip()}"
            )

        return CommandResult(
            name=job.name,
            status=status,
            exit_code=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            started_at=started_at,
            duration_ms=_elapsed_ms(start),
        )


def _decode(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
