"""Loading job files into validated job definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from cronlock.errors import ConfigError
from cronlock.models import JobsFile


@dataclass(frozen=True)
class JobProblem:
    """One invalid setting, tied to the job that carries it.

    ``job`` is the job name, ``#N`` for an unnamed job at position N, or
    ``<file>`` for problems that concern the whole file.
    """

    job: str
    setting: str
    message: str

    def __str__(self) -> str:
        if not self.setting:
            return f"{self.job}: {self.message}"
        return f"{self.job}: {self.setting}: {self.message}"


@dataclass
class JobFileError(ConfigError):
    """A job file is unreadable or defines invalid jobs."""

    problems: list[JobProblem] = field(default_factory=list)


def load_jobs(path: Path | str) -> JobsFile:
    """Read and validate a job file.

    Args:
        path: Path to the YAML job file.

    Returns:
        The validated jobs.

    Raises:
        FileNotFoundError: If the file does not exist.
        JobFileError: If the file is not YAML or any job is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Job file not found: {path}")

    return jobs_from_yaml(path.read_text(), source=str(path))


def jobs_from_yaml(content: str, source: str = "<string>") -> JobsFile:
    """Validate YAML job definitions, reporting every invalid job by name."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise JobFileError(f"Invalid YAML syntax in {source}: {e}") from e

    if data is None:
        raise JobFileError(f"Empty job file: {source}")

    try:
        return JobsFile.model_validate(data)
    except ValidationError as e:
        problems = [_problem(data, tuple(err["loc"]), err["msg"]) for err in e.errors()]
        lines = "\n".join(f"  {problem}" for problem in problems)
        msg = f"Job file validation failed ({source}):\n{lines}"
        raise JobFileError(msg, problems=problems) from e


def _problem(data: Any, loc: tuple[Any, ...], message: str) -> JobProblem:
    # Locations look like ("jobs", index, setting) for per-job errors
    if len(loc) >= 2 and loc[0] == "jobs" and isinstance(loc[1], int):
        setting = ".".join(str(part) for part in loc[2:])
        return JobProblem(_job_label(data, loc[1]), setting, message)

    return JobProblem("<file>", ".".join(str(part) for part in loc), message)


def _job_label(data: Any, index: int) -> str:
    try:
        name = data["jobs"][index]["name"]
    except (KeyError, IndexError, TypeError):
        name = None

    if isinstance(name, str) and name:
        return name
    return f"#{index + 1}"
