#!/usr/bin/env python3
"""
Tests for job records and the job store.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from orchestrator.modules.broadcast import OutputRing
from orchestrator.modules.jobs import (
    InvalidTransitionError,
    Job,
    JobNotFoundError,
    JobStatus,
    JobStore,
)


def make_job(command="docker compose ps", **kwargs):
    return Job(command=command, output=OutputRing(10), **kwargs)


class TestJob:
    def test_new_job_defaults(self):
        job = make_job()

        assert job.status is JobStatus.QUEUED
        assert len(job.id) == 36
        assert job.created_at
        assert job.started_at is None
        assert job.exit_code is None
        assert job.timed_out is False

    def test_forward_lifecycle(self):
        job = make_job()
        job.mark_running()
        job.set_resolved(["docker", "compose", "ps"], "/workspace")
        job.finish(JobStatus.SUCCEEDED, 0)

        assert job.is_terminal
        assert job.exit_code == 0
        assert job.resolved_args == ("docker", "compose", "ps")
        assert job.created_at <= job.started_at <= job.finished_at

    def test_queued_job_can_fail_directly(self):
        job = make_job()
        job.finish(JobStatus.FAILED)
        assert job.status is JobStatus.FAILED

    def test_terminal_state_is_final(self):
        job = make_job()
        job.mark_running()
        job.finish(JobStatus.FAILED, 1)

        with pytest.raises(InvalidTransitionError):
            job.finish(JobStatus.SUCCEEDED, 0)
        with pytest.raises(InvalidTransitionError):
            job.mark_running()

    def test_cannot_run_twice(self):
        job = make_job()
        job.mark_running()
        with pytest.raises(InvalidTransitionError):
            job.mark_running()

    def test_queued_cannot_succeed_without_running(self):
        job = make_job()
        with pytest.raises(InvalidTransitionError):
            job.finish(JobStatus.SUCCEEDED, 0)

    def test_finish_requires_terminal_status(self):
        job = make_job()
        job.mark_running()
        with pytest.raises(InvalidTransitionError):
            job.finish(JobStatus.RUNNING)

    def test_resolved_args_set_once(self):
        job = make_job()
        job.set_resolved(["docker"], "/workspace")
        with pytest.raises(InvalidTransitionError):
            job.set_resolved(["docker"], "/workspace")

    def test_completion_event(self):
        job = make_job()
        job.mark_running()
        job.finish(JobStatus.FAILED, 2)

        assert job.completion_event() == {
            "type": "complete",
            "message": "stream complete",
            "jobStatus": "failed",
            "exitCode": 2,
        }

    def test_status_values(self):
        assert [s.value for s in JobStatus] == [
            "queued", "running", "succeeded", "failed", "canceled",
        ]
        assert not JobStatus.RUNNING.is_terminal
        assert JobStatus.CANCELED.is_terminal


class TestJobStore:
    def test_add_get_require(self):
        store = JobStore()
        job = make_job()
        store.add(job)

        assert store.get(job.id) is job
        assert store.require(job.id) is job
        assert job.id in store
        assert len(store) == 1

    def test_unknown_job(self):
        store = JobStore()
        assert store.get("missing") is None
        with pytest.raises(JobNotFoundError):
            store.require("missing")

    def test_list_newest_first(self):
        store = JobStore()
        jobs = [make_job(f"cmd {i}") for i in range(3)]
        for job in jobs:
            store.add(job)

        assert store.list() == list(reversed(jobs))
        assert store.list(newest_first=False) == jobs

    def test_running(self):
        store = JobStore()
        a, b = make_job(), make_job()
        store.add(a)
        store.add(b)
        b.mark_running()

        assert store.running() == [b]

    def test_eviction_drops_oldest_terminal_jobs(self, collector):
        store = JobStore(max_jobs=2)
        done = make_job("old")
        done.mark_running()
        done.finish(JobStatus.SUCCEEDED, 0)
        done.output.subscribe(collector)
        store.add(done)
        store.add(make_job("queued 1"))
        store.add(make_job("queued 2"))

        assert done.id not in store
        assert len(store) == 2
        assert done.output.subscriber_count == 0

    def test_active_jobs_are_never_evicted(self):
        store = JobStore(max_jobs=1)
        first, second = make_job(), make_job()
        store.add(first)
        store.add(second)

        assert first.id in store
        assert second.id in store
