"""
Output Broadcast Ring.

Bounded, in-memory line buffer for one job that also pushes every new line
to the sinks currently attached to it. Subscribing hands back a replay
snapshot taken atomically with registration, so an observer sees each line
exactly once.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, NamedTuple, Optional

logger = logging.getLogger("orchestrator.broadcast")

Event = Dict[str, Any]
Sink = Callable[[Event], None]


class OutputLine(NamedTuple):
    """A buffered output line and its position in the job's output."""

    seq: int
    text: str


@dataclass
class ReplaySnapshot:
    """History handed to a new subscriber."""

    lines: List[OutputLine] = field(default_factory=list)
    dropped: int = 0
    closed: bool = False
    final_event: Optional[Event] = None


def line_event(line: OutputLine) -> Event:
    return {"type": "line", "seq": line.seq, "line": line.text}


class OutputRing:
    """Bounded output buffer with synchronous fan-out to sinks."""

    def __init__(self, max_lines: int = 20000):
        if max_lines < 1:
            raise ValueError("max_lines must be at least 1")
        self.max_lines = max_lines
        self._lines: Deque[OutputLine] = deque(maxlen=max_lines)
        self._sinks: List[Sink] = []
        self._next_seq = 1
        self._closed = False
        self._final_event: Optional[Event] = None
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_seq(self) -> int:
        """Sequence number of the newest line ever appended (0 if none)."""
        return self._next_seq - 1

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._sinks)

    @property
    def lines(self) -> List[str]:
        with self._lock:
            return [line.text for line in self._lines]

    def tail(self, n: int) -> List[str]:
        """Return up to the last n buffered lines."""
        if n <= 0:
            return []
        with self._lock:
            start = max(0, len(self._lines) - n)
            return [self._lines[i].text for i in range(start, len(self._lines))]

    def append(self, text: str) -> Optional[OutputLine]:
        """
        Store a line and deliver it to every attached sink.

        Lines appended after close() are dropped.

        Returns:
            The stored line, or None if the ring is closed
        """
        with self._lock:
            if self._closed:
                logger.debug("Dropping line appended after close")
                return None
            line = OutputLine(self._next_seq, text)
            self._next_seq += 1
            self._lines.append(line)
            sinks = list(self._sinks)
            # Deliver under the lock so a concurrent subscribe() cannot
            # interleave between snapshot and first live line
            self._deliver(sinks, line_event(line))
        return line

    def subscribe(self, sink: Sink, after_seq: Optional[int] = None) -> ReplaySnapshot:
        """
        Attach a sink and return the history it has not seen yet.

        Args:
            sink: Callable receiving event dicts
            after_seq: Only replay lines newer than this sequence number

        Returns:
            ReplaySnapshot. When the ring is already closed the sink is not
            registered and the snapshot carries the final event.
        """
        with self._lock:
            lines = list(self._lines)
            if after_seq is not None:
                lines = [line for line in lines if line.seq > after_seq]
                oldest = self._lines[0].seq if self._lines else self._next_seq
                dropped = max(0, oldest - after_seq - 1)
            else:
                oldest = self._lines[0].seq if self._lines else self._next_seq
                dropped = oldest - 1

            snapshot = ReplaySnapshot(
                lines=lines,
                dropped=dropped,
                closed=self._closed,
                final_event=self._final_event,
            )
            if not self._closed:
                self._sinks.append(sink)
        return snapshot

    def unsubscribe(self, sink: Sink) -> bool:
        """Detach a sink. Returns False if it was not attached."""
        with self._lock:
            try:
                self._sinks.remove(sink)
            except ValueError:
                return False
        return True

    def close(self, final_event: Event) -> None:
        """Mark the output complete, notify sinks once, and detach them."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._final_event = final_event
            sinks = list(self._sinks)
            self._sinks.clear()
            self._deliver(sinks, final_event)

    def dispose(self) -> None:
        """Release all sinks without notifying them."""
        with self._lock:
            self._sinks.clear()

    @staticmethod
    def _deliver(sinks: List[Sink], event: Event) -> None:
        for sink in sinks:
            try:
                sink(event)
            except Exception as e:
                logger.warning(f"Output sink failed, skipping it: {e}")
