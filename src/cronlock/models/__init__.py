"""cronlock data models."""

from .job import JobConfig, JobsFile

__all__ = ["JobConfig", "JobsFile"]
