"""
Correlation Module - Black Box Interface

Purpose: Decide whether a stream request belongs to the current run
Interface: RunCorrelationGuard.set_active_run()/ensure_current()/issue_request()/redeem_request()
Hidden: Ticket storage and expiry

Single slot, in memory. A restart forgets the active run.
"""

from .guard import RequestTicket, RunCorrelationGuard, StaleRunError

__all__ = ["RequestTicket", "RunCorrelationGuard", "StaleRunError"]
