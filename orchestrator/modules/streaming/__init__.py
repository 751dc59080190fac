"""
Streaming Module - Black Box Interface

Purpose: Relay one job's output to a push subscriber
Interface: job_event_stream(), parse_last_event_id()
Hidden: Sink registration, replay and live hand-off, cleanup on disconnect

Transport agnostic; the API layer wraps it in an EventSourceResponse.
"""

from .stream import job_event_stream, parse_last_event_id

__all__ = ["job_event_stream", "parse_last_event_id"]
