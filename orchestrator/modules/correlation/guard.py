"""
Run Correlation Guard.

Tracks the one authoritative run id and hands out short-lived, single-use
request ids for event subscriptions. Anything tagged with an older run id is
stale and gets rejected before any subscription state is created.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger("orchestrator.correlation")


class StaleRunError(Exception):
    """Raised when a request carries a run id that is no longer active."""

    def __init__(self, run_id: Optional[str], active_run_id: Optional[str], reason: str = ""):
        self.run_id = run_id
        self.active_run_id = active_run_id
        self.reason = reason or "run superseded by a newer submission"
        super().__init__(f"Stale run {run_id}: {self.reason}")


@dataclass(frozen=True)
class RequestTicket:
    """A request id issued for one job subscription."""

    request_id: str
    job_id: str
    run_id: Optional[str]
    expires_at: float


class RunCorrelationGuard:
    def __init__(self, request_ttl: float = 60.0, clock: Callable[[], float] = time.monotonic):
        """
        Initialize guard.

        Args:
            request_ttl: Seconds an issued request id stays redeemable
            clock: Monotonic time source (injectable for tests)
        """
        self.request_ttl = request_ttl
        self._clock = clock
        self._active_run: Optional[str] = None
        self._tickets: Dict[str, RequestTicket] = {}
        self._lock = threading.Lock()

    def set_active_run(self, run_id: str) -> None:
        """Make run_id authoritative. Outstanding request ids of older runs are dropped."""
        with self._lock:
            previous = self._active_run
            self._active_run = run_id
            self._tickets = {
                rid: t for rid, t in self._tickets.items() if t.run_id in (None, run_id)
            }
        if previous and previous != run_id:
            logger.info(f"Run {previous} superseded by {run_id}")

    def get_active_run(self) -> Optional[str]:
        with self._lock:
            return self._active_run

    def is_stale(self, run_id: Optional[str]) -> bool:
        """True when run_id is given and differs from the active run."""
        if run_id is None:
            return False
        with self._lock:
            return self._active_run is not None and run_id != self._active_run

    def ensure_current(self, run_id: Optional[str], job_run_id: Optional[str] = None) -> None:
        """
        Raise StaleRunError when run_id is stale.

        When job_run_id is given, run_id must also name the run the job was
        submitted under.
        """
        if self.is_stale(run_id):
            raise StaleRunError(run_id, self.get_active_run())
        if run_id is not None and job_run_id is not None and run_id != job_run_id:
            raise StaleRunError(
                run_id, self.get_active_run(), f"job belongs to run {job_run_id}"
            )

    def issue_request(
        self, job_id: str, run_id: Optional[str] = None, job_run_id: Optional[str] = None
    ) -> RequestTicket:
        """
        Issue a request id for subscribing to job_id.

        Logic:
        1. Reject stale run ids and run ids the job does not belong to
           (nothing is stored)
        2. Purge expired tickets
        3. Store and return a new ticket
        """
        self.ensure_current(run_id, job_run_id)
        now = self._clock()
        ticket = RequestTicket(
            request_id=secrets.token_urlsafe(16),
            job_id=job_id,
            run_id=run_id,
            expires_at=now + self.request_ttl,
        )
        with self._lock:
            self._purge_locked(now)
            self._tickets[ticket.request_id] = ticket
        logger.debug(f"Issued request id for job {job_id} (run {run_id})")
        return ticket

    def redeem_request(self, request_id: str, job_id: str) -> RequestTicket:
        """
        Consume a request id. Unknown, expired or mismatched ids are stale.

        Returns:
            The redeemed ticket
        """
        now = self._clock()
        with self._lock:
            self._purge_locked(now)
            ticket = self._tickets.pop(request_id, None)
            active = self._active_run

        if ticket is None:
            raise StaleRunError(None, active, "unknown or expired request id")
        if ticket.job_id != job_id:
            raise StaleRunError(ticket.run_id, active, "request id was issued for another job")
        if ticket.run_id is not None and active is not None and ticket.run_id != active:
            raise StaleRunError(ticket.run_id, active)
        return ticket

    def outstanding(self) -> int:
        """Number of unexpired request ids."""
        with self._lock:
            self._purge_locked(self._clock())
            return len(self._tickets)

    def _purge_locked(self, now: float) -> None:
        expired = [rid for rid, t in self._tickets.items() if t.expires_at <= now]
        for rid in expired:
            del self._tickets[rid]
