"""
Job event stream.

Turns a job's output ring into the ordered event sequence sent over SSE:
connected, an optional gap notice, replayed lines, live lines, complete.
"""

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Dict, Optional

from ..broadcast import Event
from ..jobs import Job

logger = logging.getLogger("orchestrator.streaming")


def _sse(event: str, payload: Dict[str, Any], event_id: Optional[int] = None) -> Dict[str, Any]:
    message = {"event": event, "data": json.dumps(payload)}
    if event_id is not None:
        message["id"] = str(event_id)
    return message


def parse_last_event_id(value: Optional[str]) -> Optional[int]:
    """Parse an SSE Last-Event-ID header into a line sequence number."""
    if value is None:
        return None
    try:
        seq = int(value.strip())
    except ValueError:
        logger.debug(f"Ignoring malformed Last-Event-ID: {value!r}")
        return None
    return seq if seq >= 0 else None


async def job_event_stream(
    job: Job,
    request_id: Optional[str] = None,
    last_event_id: Optional[int] = None,
) -> AsyncGenerator[Dict[str, Any], None]:
    """
    Generate SSE messages for one subscriber.

    Args:
        job: Job to follow
        request_id: Correlation request id echoed in connected/complete
        last_event_id: Resume after this line sequence number

    Yields:
        Dicts accepted by sse_starlette's EventSourceResponse
    """
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[Event]" = asyncio.Queue()

    def sink(event: Event) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    yield _sse(
        "connected",
        {
            "type": "connected",
            "message": "subscribed",
            "jobStatus": job.status.value,
            "requestId": request_id,
        },
    )

    snapshot = job.output.subscribe(sink, after_seq=last_event_id)
    logger.info(
        f"Subscriber attached to job {job.id} "
        f"(replay: {len(snapshot.lines)} lines, dropped: {snapshot.dropped})"
    )

    try:
        if snapshot.dropped:
            yield _sse("gap", {"type": "gap", "missed": snapshot.dropped})

        for line in snapshot.lines:
            yield _sse("line", {"line": line.text}, line.seq)

        if snapshot.closed:
            yield _complete(snapshot.final_event or job.completion_event(), request_id)
            return

        while True:
            event = await queue.get()
            if event.get("type") == "line":
                yield _sse("line", {"line": event["line"]}, event["seq"])
            else:
                yield _complete(event, request_id)
                break

    except asyncio.CancelledError:
        logger.info(f"Subscriber disconnected from job {job.id}")
        raise
    finally:
        job.output.unsubscribe(sink)


def _complete(event: Event, request_id: Optional[str]) -> Dict[str, Any]:
    payload = dict(event)
    payload["requestId"] = request_id
    return _sse("complete", payload)
