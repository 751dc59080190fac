"""
Orchestrator API data models.

Request and response bodies for the /v1 routes. Field names are snake_case
in Python and camelCase on the wire.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..jobs import Job, JobStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request Models (API Input)


class RunRequest(CamelModel):
    """Request to run a docker compose command."""

    command: str = Field(
        ...,
        description="Command text, e.g. 'docker compose up -d grafana'",
        min_length=3,
        max_length=2000,
    )
    run_id: Optional[str] = Field(
        None,
        description="Run correlation id; defaults to the job id",
        min_length=1,
        max_length=128,
    )

    @field_validator("command")
    @classmethod
    def strip_command(cls, v):
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Command must be at least 3 characters")
        return v


# Response Models (API Output)


class RunResponse(CamelModel):
    """Accepted run request."""

    job_id: str
    run_id: str
    status_url: str
    events_url: str
    events_meta_url: str

    @classmethod
    def for_job(cls, job: Job) -> "RunResponse":
        base = f"/v1/jobs/{job.id}"
        return cls(
            job_id=job.id,
            run_id=job.run_id,
            status_url=base,
            events_url=f"{base}/events",
            events_meta_url=f"{base}/events/meta",
        )


class JobSummary(CamelModel):
    """Job without its output."""

    id: str
    status: JobStatus
    command: str
    run_id: Optional[str] = None
    created_at: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    exit_code: Optional[int] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobSummary":
        return cls(
            id=job.id,
            status=job.status,
            command=job.command,
            run_id=job.run_id,
            created_at=job.created_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
            exit_code=job.exit_code,
        )


class JobStatusResponse(JobSummary):
    """Job status with the tail of its output."""

    resolved_args: Optional[List[str]] = None
    working_directory: Optional[str] = None
    timed_out: bool = False
    total_lines: int = Field(0, description="Lines ever produced, including evicted ones")
    last_lines: List[str] = Field(default_factory=list)

    @classmethod
    def from_job(cls, job: Job, tail: int = 200) -> "JobStatusResponse":
        summary = JobSummary.from_job(job)
        return cls(
            **summary.model_dump(),
            resolved_args=list(job.resolved_args) if job.resolved_args else None,
            working_directory=job.working_directory,
            timed_out=job.timed_out,
            total_lines=job.output.last_seq,
            last_lines=job.output.tail(tail),
        )


class JobListResponse(CamelModel):
    jobs: List[JobSummary]


class EventsMetaResponse(CamelModel):
    """Correlation token for an upcoming event subscription."""

    request_id: str
    job_id: str
    run_id: Optional[str] = None
    expires_in: int = Field(..., description="Seconds until the request id expires")


class ErrorResponse(BaseModel):
    error: str
    reason: Optional[str] = None


class HealthResponse(CamelModel):
    status: str
    queue_depth: int = 0
    running_jobs: List[str] = Field(default_factory=list)
    active_run_id: Optional[str] = None
    timestamp: str
