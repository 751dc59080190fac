"""
Job stream client for the orchestrator API.

Submits a command and follows its SSE output to completion, reconnecting
with backoff when the stream drops. Before every (re)subscription the client
asks the events meta endpoint for a request id; a 409 there, or a newer local
submission, means the run was superseded and the client stops instead of
attaching to someone else's stream.

State machine:
    idle -> submitted -> streaming -> (reconnecting -> streaming)* -> terminal
where terminal is one of completed, superseded or failed.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
import sseclient

logger = logging.getLogger("orchestrator.client")


class RunPhase(str, Enum):
    """Client-side phase of a run."""

    IDLE = "idle"
    SUBMITTED = "submitted"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    COMPLETED = "completed"
    SUPERSEDED = "superseded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunPhase.COMPLETED, RunPhase.SUPERSEDED, RunPhase.FAILED)


class ClientError(Exception):
    """Raised for responses the client cannot recover from."""


class CommandRejectedError(ClientError):
    """The server refused the command at submission."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Command rejected: {reason}")


class _Superseded(Exception):
    pass


@dataclass
class RunOutcome:
    """Result of following one job."""

    job_id: str
    run_id: str
    phase: RunPhase
    job_status: Optional[str] = None
    exit_code: Optional[int] = None
    lines: List[str] = field(default_factory=list)
    reconnects: int = 0
    error: Optional[str] = None


class JobStreamClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        max_reconnects: int = 5,
        backoff: float = 1.0,
        max_backoff: float = 30.0,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_line: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize client.

        Args:
            base_url: Orchestrator URL, e.g. http://localhost:4000
            api_key: Bearer token (ORCH_API_KEY on the server)
            max_reconnects: Reconnect attempts before giving up
            backoff: Initial reconnect delay in seconds, doubled per attempt
            max_backoff: Upper bound for the reconnect delay
            timeout: Connect/read timeout for non-streaming calls
            session: requests session to use
            sleep: Delay function (injectable for tests)
            on_line: Called with each output line as it arrives
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_reconnects = max_reconnects
        self.backoff = backoff
        self.max_backoff = max_backoff
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep
        self._on_line = on_line
        self._phase = RunPhase.IDLE
        self._current_run: Optional[str] = None

    @property
    def phase(self) -> RunPhase:
        return self._phase

    @property
    def current_run(self) -> Optional[str]:
        return self._current_run

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def submit(self, command: str, run_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Submit a command. Makes this run the current one.

        Returns:
            The 202 response body (jobId, runId, statusUrl, eventsUrl, ...)

        Raises:
            CommandRejectedError: Server rejected the command
            ClientError: Any other non-202 response
        """
        run_id = run_id or str(uuid.uuid4())
        # Claim the run before the request so an in-flight follow() stops
        self._current_run = run_id

        response = self.session.post(
            f"{self.base_url}/v1/run",
            json={"command": command, "runId": run_id},
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code == 400:
            body = response.json()
            self._phase = RunPhase.FAILED
            raise CommandRejectedError(body.get("reason") or body.get("error", "rejected"))
        if response.status_code != 202:
            self._phase = RunPhase.FAILED
            raise ClientError(f"Submit failed: {response.status_code} {response.text}")

        body = response.json()
        self._phase = RunPhase.SUBMITTED
        logger.info(f"Submitted job {body['jobId']} (run {body['runId']})")
        return body

    def abandon(self) -> None:
        """Stop caring about the current run; an active follow() ends as superseded."""
        self._current_run = None

    def run(self, command: str) -> RunOutcome:
        """Submit a command and follow it to the end."""
        accepted = self.submit(command)
        return self.follow(accepted["jobId"], accepted["runId"])

    def status(self, job_id: str) -> Dict[str, Any]:
        response = self.session.get(
            f"{self.base_url}/v1/jobs/{job_id}", headers=self._headers(), timeout=self.timeout
        )
        if response.status_code != 200:
            raise ClientError(f"Status failed: {response.status_code} {response.text}")
        return response.json()

    def follow(self, job_id: str, run_id: str) -> RunOutcome:
        """
        Stream a job's output until it completes.

        Logic:
        1. Stop if a newer run was submitted locally
        2. Ask the meta endpoint for a request id (409 means superseded)
        3. Stream from the last seen line id
        4. On a dropped stream, back off and go to 1
        """
        outcome = RunOutcome(job_id=job_id, run_id=run_id, phase=RunPhase.STREAMING)
        last_event_id: Optional[int] = None
        attempts = 0

        while True:
            try:
                if self._current_run != run_id:
                    raise _Superseded()
                request_id = self._events_meta(job_id, run_id)
                self._phase = RunPhase.STREAMING
                complete, last_event_id = self._stream(
                    job_id, run_id, request_id, last_event_id, outcome.lines
                )
                if complete is not None:
                    outcome.job_status = complete.get("jobStatus")
                    outcome.exit_code = complete.get("exitCode")
                    return self._finish(outcome, RunPhase.COMPLETED)
                logger.warning(f"Stream for job {job_id} ended before completion")

            except _Superseded:
                logger.info(f"Run {run_id} superseded, not resubscribing")
                return self._finish(outcome, RunPhase.SUPERSEDED)

            except ClientError as e:
                logger.error(f"Giving up on job {job_id}: {e}")
                outcome.error = str(e)
                return self._finish(outcome, RunPhase.FAILED)

            except requests.RequestException as e:
                logger.warning(f"Stream for job {job_id} dropped: {e}")
                outcome.error = str(e)

            attempts += 1
            if attempts > self.max_reconnects:
                logger.error(f"Giving up on job {job_id} after {self.max_reconnects} reconnects")
                return self._finish(outcome, RunPhase.FAILED)

            outcome.reconnects = attempts
            self._phase = RunPhase.RECONNECTING
            delay = min(self.max_backoff, self.backoff * 2 ** (attempts - 1))
            logger.info(f"Reconnecting to job {job_id} in {delay:g}s (attempt {attempts})")
            self._sleep(delay)

    def _finish(self, outcome: RunOutcome, phase: RunPhase) -> RunOutcome:
        outcome.phase = phase
        self._phase = phase
        return outcome

    def _check(self, response: requests.Response) -> None:
        """Map status codes: 409 superseded, other 4xx fatal, 5xx retryable."""
        if response.status_code == 409:
            raise _Superseded()
        if 400 <= response.status_code < 500:
            raise ClientError(f"{response.status_code} {response.text}")
        response.raise_for_status()

    def _events_meta(self, job_id: str, run_id: str) -> str:
        response = self.session.get(
            f"{self.base_url}/v1/jobs/{job_id}/events/meta",
            params={"runId": run_id},
            headers=self._headers(),
            timeout=self.timeout,
        )
        self._check(response)
        return response.json()["requestId"]

    def _stream(
        self,
        job_id: str,
        run_id: str,
        request_id: str,
        last_event_id: Optional[int],
        lines: List[str],
    ) -> Tuple[Optional[Dict[str, Any]], Optional[int]]:
        """
        Read one SSE connection.

        Returns:
            (complete event payload or None if the stream dropped, last line id)
        """
        headers = self._headers()
        headers["Accept"] = "text/event-stream"
        if last_event_id is not None:
            headers["Last-Event-ID"] = str(last_event_id)

        response = self.session.get(
            f"{self.base_url}/v1/jobs/{job_id}/events",
            params={"runId": run_id, "requestId": request_id},
            headers=headers,
            stream=True,
            timeout=(self.timeout, None),
        )
        self._check(response)

        client = sseclient.SSEClient(response)
        try:
            for event in client.events():
                if self._current_run != run_id:
                    raise _Superseded()

                if event.event == "line":
                    line = json.loads(event.data)["line"]
                    lines.append(line)
                    if event.id:
                        last_event_id = int(event.id)
                    if self._on_line:
                        self._on_line(line)

                elif event.event == "gap":
                    missed = json.loads(event.data).get("missed", 0)
                    logger.warning(f"Missed {missed} lines of job {job_id} (evicted)")

                elif event.event == "complete":
                    return json.loads(event.data), last_event_id

                elif event.event == "connected":
                    logger.debug(f"Connected to job {job_id}: {event.data}")
        finally:
            client.close()

        return None, last_event_id
