"""
Client - Black Box Interface

Purpose: Submit commands and follow their output from Python
Interface: JobStreamClient.submit()/follow()/run()/abandon(), RunPhase, RunOutcome
Hidden: SSE parsing, reconnect backoff, stale run detection
"""

from .job_client import ClientError, CommandRejectedError, JobStreamClient, RunOutcome, RunPhase

__all__ = ["ClientError", "CommandRejectedError", "JobStreamClient", "RunOutcome", "RunPhase"]
