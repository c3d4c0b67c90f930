"""Job models for cronlock job files."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from cronlock.errors import CronParseError
from cronlock.parser import FIELDS, Entry, compile_field, parse, resolve_timezone


class JobConfig(BaseModel):
    """A named command run on a cron schedule."""

    name: str = Field(..., min_length=1, max_length=255, description="Unique job name")
    schedule: str = Field(..., description="Cron expression (5 fields)")
    timezone: str = Field(default="local", description="Timezone for schedule")
    command: str = Field(..., min_length=1, description="Shell command to run")
    meta: str | None = Field(default=None, max_length=1024, description="Free-text metadata")

    @field_validator("schedule")
    @classmethod
    def validate_cron_expression(cls, v: str) -> str:
        """Validate cron expression format."""
        parts = v.split()
        if len(parts) != len(FIELDS):
            msg = f"Cron expression must have {len(FIELDS)} fields, got {len(parts)}"
            raise ValueError(msg)

        for token, (field_name, minimum, maximum) in zip(parts, FIELDS, strict=True):
            try:
                compile_field(token, minimum, maximum)
            except CronParseError as e:
                msg = f"Invalid {field_name} field {token!r}: {e}"
                raise ValueError(msg) from e
        return " ".join(parts)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone can be resolved."""
        try:
            resolve_timezone(v)
        except CronParseError as e:
            raise ValueError(str(e)) from e
        return v

    def to_entry(self) -> Entry:
        """Compile the job schedule into an Entry."""
        return parse(self.schedule, self.timezone, self.name, meta=self.meta)


class JobsFile(BaseModel):
    """Complete job file definition."""

    jobs: list[JobConfig] = Field(default_factory=list, description="Scheduled jobs")

    @model_validator(mode="after")
    def validate_unique_names(self) -> JobsFile:
        """Ensure job names are unique."""
        seen: set[str] = set()
        duplicates: list[str] = []
        for job in self.jobs:
            if job.name in seen:
                duplicates.append(job.name)
            seen.add(job.name)

        if duplicates:
            msg = f"Duplicate job names: {', '.join(sorted(set(duplicates)))}"
            raise ValueError(msg)
        return self

    def get_job(self, name: str) -> JobConfig | None:
        """Get a job by name."""
        for job in self.jobs:
            if job.name == name:
                return job
        return None
