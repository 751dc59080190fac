"""
Tests for the job event stream generator.

The generator is driven directly; the HTTP wrapper is covered in test_api.py.
"""

import asyncio
import json
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from orchestrator.modules.broadcast import OutputRing
from orchestrator.modules.jobs import Job, JobStatus
from orchestrator.modules.streaming import job_event_stream, parse_last_event_id


def make_job(max_lines=100):
    return Job(command="docker compose up -d grafana", output=OutputRing(max_lines))


def finish(job, status=JobStatus.SUCCEEDED, exit_code=0):
    if job.status is JobStatus.QUEUED:
        job.mark_running()
    job.finish(status, exit_code)
    job.output.close(job.completion_event())


async def collect(gen, limit=1000):
    messages = []
    async for message in gen:
        messages.append(message)
        if len(messages) >= limit:
            break
    return messages


def payload(message):
    return json.loads(message["data"])


@pytest.mark.asyncio
async def test_finished_job_replays_then_completes():
    job = make_job()
    job.output.append("pulling grafana")
    job.output.append("started grafana")
    finish(job)

    messages = await collect(job_event_stream(job, request_id="req-1"))

    assert [m["event"] for m in messages] == ["connected", "line", "line", "complete"]
    assert payload(messages[0]) == {
        "type": "connected",
        "message": "subscribed",
        "jobStatus": "succeeded",
        "requestId": "req-1",
    }
    assert payload(messages[1]) == {"line": "pulling grafana"}
    assert messages[1]["id"] == "1"
    assert messages[2]["id"] == "2"
    assert payload(messages[3]) == {
        "type": "complete",
        "message": "stream complete",
        "jobStatus": "succeeded",
        "exitCode": 0,
        "requestId": "req-1",
    }
    assert job.output.subscriber_count == 0


@pytest.mark.asyncio
async def test_live_lines_follow_replay():
    job = make_job()
    job.output.append("before")
    job.mark_running()

    gen = job_event_stream(job)
    connected = await gen.__anext__()
    replayed = await gen.__anext__()
    assert connected["event"] == "connected"
    assert payload(connected)["jobStatus"] == "running"
    assert payload(replayed) == {"line": "before"}

    async def produce():
        await asyncio.sleep(0.01)
        job.output.append("during")
        job.finish(JobStatus.FAILED, 1)
        job.output.close(job.completion_event())

    producer = asyncio.create_task(produce())
    rest = await asyncio.wait_for(collect(gen), timeout=5)
    await producer

    assert [m["event"] for m in rest] == ["line", "complete"]
    assert payload(rest[0]) == {"line": "during"}
    assert rest[0]["id"] == "2"
    assert payload(rest[1])["jobStatus"] == "failed"
    assert payload(rest[1])["exitCode"] == 1


@pytest.mark.asyncio
async def test_resume_from_last_event_id():
    job = make_job()
    for i in range(5):
        job.output.append(f"line {i}")
    finish(job)

    messages = await collect(job_event_stream(job, last_event_id=3))
    lines = [payload(m)["line"] for m in messages if m["event"] == "line"]

    assert lines == ["line 3", "line 4"]


@pytest.mark.asyncio
async def test_gap_event_when_history_was_evicted():
    job = make_job(max_lines=2)
    for i in range(6):
        job.output.append(f"line {i}")
    finish(job)

    messages = await collect(job_event_stream(job, last_event_id=1))

    assert [m["event"] for m in messages] == ["connected", "gap", "line", "line", "complete"]
    assert payload(messages[1]) == {"type": "gap", "missed": 3}


@pytest.mark.asyncio
async def test_disconnect_unsubscribes():
    job = make_job()
    job.mark_running()

    gen = job_event_stream(job)
    await gen.__anext__()
    job.output.append("one")
    await gen.__anext__()
    assert job.output.subscriber_count == 1

    await gen.aclose()

    assert job.output.subscriber_count == 0


@pytest.mark.asyncio
async def test_subscribers_see_identical_sequences():
    job = make_job()
    job.mark_running()
    streams = [job_event_stream(job) for _ in range(3)]
    for gen in streams:
        await gen.__anext__()
    # Attach all subscribers before any output exists
    firsts = [asyncio.ensure_future(gen.__anext__()) for gen in streams]
    await asyncio.sleep(0)

    for i in range(10):
        job.output.append(str(i))
    job.finish(JobStatus.SUCCEEDED, 0)
    job.output.close(job.completion_event())

    results = []
    for first, gen in zip(firsts, streams):
        messages = [await first] + await collect(gen)
        results.append([payload(m).get("line") for m in messages if m["event"] == "line"])

    assert results[0] == results[1] == results[2] == [str(i) for i in range(10)]


class TestParseLastEventId:
    def test_valid(self):
        assert parse_last_event_id("42") == 42
        assert parse_last_event_id(" 7 ") == 7

    def test_missing_or_invalid(self):
        assert parse_last_event_id(None) is None
        assert parse_last_event_id("abc") is None
        assert parse_last_event_id("-1") is None
