"""
Job record for the orchestrator.

A Job is one accepted execution request and everything known about its run:
status, timestamps, the argv actually executed, the exit code, and its output
ring (buffered lines plus attached observers).
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..broadcast import OutputRing

SPAWN_FAILURE_EXIT_CODE = -1


class JobStatus(str, Enum):
    """Lifecycle status of a job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED})

_ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELED},
    JobStatus.RUNNING: TERMINAL_STATUSES,
}


class InvalidTransitionError(RuntimeError):
    """Raised when a job status change would move backwards or leave a terminal state."""


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class Job:
    """One execution request and its lifecycle."""

    command: str
    output: OutputRing
    run_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.QUEUED
    created_at: str = field(default_factory=utc_now)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    resolved_args: Optional[Tuple[str, ...]] = None
    working_directory: Optional[str] = None
    exit_code: Optional[int] = None
    timed_out: bool = False
    # Extension point for a future user-initiated cancel
    process: Optional[Any] = field(default=None, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def output_lines(self) -> List[str]:
        return self.output.lines

    def _transition(self, new_status: JobStatus) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransitionError(
                f"Job {self.id}: cannot move from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def mark_running(self) -> None:
        """Move a queued job to running and stamp its start time."""
        self._transition(JobStatus.RUNNING)
        self.started_at = utc_now()

    def set_resolved(self, argv: List[str], working_directory: str) -> None:
        """Record the argument vector actually executed. Set once."""
        if self.resolved_args is not None:
            raise InvalidTransitionError(f"Job {self.id}: resolved args already set")
        self.resolved_args = tuple(argv)
        self.working_directory = working_directory

    def finish(self, status: JobStatus, exit_code: Optional[int] = None) -> None:
        """
        Move the job to a terminal status.

        Args:
            status: One of the terminal statuses
            exit_code: Process exit code, or the spawn failure sentinel
        """
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Job {self.id}: {status.value} is not terminal")
        self._transition(status)
        if exit_code is not None:
            self.exit_code = exit_code
        self.finished_at = utc_now()
        self.process = None

    def completion_event(self) -> Dict[str, Any]:
        """Terminal marker delivered to observers when the job ends."""
        return {
            "type": "complete",
            "message": "stream complete",
            "jobStatus": self.status.value,
            "exitCode": self.exit_code,
        }

