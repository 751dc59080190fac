"""
HTTP routes for job submission, status and live output.

Routes only orchestrate: validation lives in the policy module, execution in
the supervisor, correlation in the guard.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from ..policy import CommandRejectedError
from ..streaming import job_event_stream, parse_last_event_id
from .dependencies import OrchestratorServices, enforce_rate_limit, get_services, verify_bearer
from .models import (
    ErrorResponse,
    EventsMetaResponse,
    JobListResponse,
    JobStatusResponse,
    JobSummary,
    RunRequest,
    RunResponse,
)

logger = logging.getLogger("orchestrator.api")

# Seconds between SSE keep-alive comments
SSE_PING_SECONDS = 15

router = APIRouter(
    prefix="/v1",
    dependencies=[Depends(verify_bearer), Depends(enforce_rate_limit)],
)


@router.post(
    "/run",
    response_model=RunResponse,
    status_code=202,
    responses={400: {"model": ErrorResponse}},
)
async def run_command(
    body: RunRequest,
    services: OrchestratorServices = Depends(get_services),
):
    """
    Validate a command and queue it for execution.

    Returns:
        202: Job queued
        400: Command rejected (no job is created)
        401: Unauthorized
    """
    try:
        services.policy.build(body.command)
    except CommandRejectedError as e:
        logger.warning(f"Rejected command {body.command!r}: {e.reason}")
        return JSONResponse(status_code=400, content={"error": "rejected", "reason": e.reason})

    job = services.supervisor.submit(body.command, run_id=body.run_id)
    services.guard.set_active_run(job.run_id)
    return RunResponse.for_job(job)


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(services: OrchestratorServices = Depends(get_services)):
    """List retained jobs, newest first."""
    return JobListResponse(jobs=[JobSummary.from_job(j) for j in services.store.list()])


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(
    job_id: str,
    tail: Optional[int] = Query(None, ge=0, description="Number of trailing lines to return"),
    services: OrchestratorServices = Depends(get_services),
):
    """
    Get job status and its last output lines.

    Returns:
        200: Job status
        404: Unknown job
    """
    job = services.supervisor.get(job_id)
    if tail is None:
        tail = services.execution.status_tail_lines
    return JobStatusResponse.from_job(job, tail=tail)


@router.get("/jobs/{job_id}/events/meta", response_model=EventsMetaResponse)
async def get_events_meta(
    job_id: str,
    response: Response,
    run_id: Optional[str] = Query(None, alias="runId"),
    services: OrchestratorServices = Depends(get_services),
):
    """
    Issue a request id for subscribing to a job's events.

    Returns:
        200: Request id (also sent as X-Request-Id)
        404: Unknown job
        409: Run is stale, or the job belongs to another run
    """
    job = services.supervisor.get(job_id)
    ticket = services.guard.issue_request(job.id, run_id, job_run_id=job.run_id)
    response.headers["X-Request-Id"] = ticket.request_id
    return EventsMetaResponse(
        request_id=ticket.request_id,
        job_id=job.id,
        run_id=ticket.run_id,
        expires_in=int(services.guard.request_ttl),
    )


@router.get("/jobs/{job_id}/events")
async def stream_job_events(
    request: Request,
    job_id: str,
    run_id: Optional[str] = Query(None, alias="runId"),
    request_id: Optional[str] = Query(None, alias="requestId"),
    last_event_id: Optional[str] = Header(None, alias="Last-Event-ID"),
    services: OrchestratorServices = Depends(get_services),
):
    """
    SSE stream of a job's output.

    Sends buffered lines first, then live lines, then a complete event.

    Returns:
        SSE stream
        404: Unknown job
        409: Run is stale or the job belongs to another run (no subscription is created)
    """
    job = services.supervisor.get(job_id)
    services.guard.ensure_current(run_id, job_run_id=job.run_id)
    if request_id is not None:
        services.guard.redeem_request(request_id, job.id)

    client = request.client.host if request.client else "unknown"
    logger.info(f"Client {client} subscribing to job {job.id}")

    return EventSourceResponse(
        job_event_stream(job, request_id=request_id, last_event_id=parse_last_event_id(last_event_id)),
        ping=SSE_PING_SECONDS,
    )
