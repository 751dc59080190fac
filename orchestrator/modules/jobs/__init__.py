"""
Jobs Module - Black Box Interface

Purpose: Job records and their in-memory store
Interface: Job, JobStatus, JobStore.add()/get()/require()/list()
Hidden: Status transition rules, retention and eviction

Jobs live for the process lifetime only; no durable persistence.
"""

from .models import (
    SPAWN_FAILURE_EXIT_CODE,
    TERMINAL_STATUSES,
    InvalidTransitionError,
    Job,
    JobStatus,
)
from .store import JobNotFoundError, JobStore

__all__ = [
    "InvalidTransitionError",
    "Job",
    "JobNotFoundError",
    "JobStatus",
    "JobStore",
    "SPAWN_FAILURE_EXIT_CODE",
    "TERMINAL_STATUSES",
]
