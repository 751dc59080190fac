"""
Broadcast Module - Black Box Interface

Purpose: Buffer a job's output and push new lines to live observers
Interface: append(), subscribe(), unsubscribe(), close(), tail()
Hidden: Eviction, sequence numbering, delivery isolation

In-process memory only; nothing survives a restart.
"""

from .ring import Event, OutputLine, OutputRing, ReplaySnapshot, Sink, line_event

__all__ = ["Event", "OutputLine", "OutputRing", "ReplaySnapshot", "Sink", "line_event"]
