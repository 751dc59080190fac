import logging
import threading
from collections import OrderedDict
from typing import List, Optional

from .models import Job, JobStatus

logger = logging.getLogger("orchestrator.jobs")


class JobNotFoundError(KeyError):
    """Raised when a job id is not in the store."""


class JobStore:
    def __init__(self, max_jobs: int = 500):
        """
        Initialize job store.

        Args:
            max_jobs: Retention limit. Past it, the oldest terminal jobs are
                evicted; queued and running jobs are never evicted.
        """
        self.max_jobs = max_jobs
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def add(self, job: Job) -> None:
        """
        Store a new job.

        Logic:
        1. Insert in creation order
        2. Evict oldest terminal jobs while over the retention limit
        3. Dispose evicted jobs' output rings
        """
        with self._lock:
            self._jobs[job.id] = job
            evicted = self._evict_locked()

        for old in evicted:
            old.output.dispose()
            logger.debug(f"Evicted job {old.id} ({old.status.value})")

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def require(self, job_id: str) -> Job:
        """Get a job or raise JobNotFoundError."""
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list(self, newest_first: bool = True) -> List[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        return list(reversed(jobs)) if newest_first else jobs

    def running(self) -> List[Job]:
        with self._lock:
            return [j for j in self._jobs.values() if j.status is JobStatus.RUNNING]

    def _evict_locked(self) -> List[Job]:
        evicted = []
        if len(self._jobs) <= self.max_jobs:
            return evicted
        for job_id in list(self._jobs):
            if len(self._jobs) <= self.max_jobs:
                break
            job = self._jobs[job_id]
            if job.is_terminal:
                evicted.append(self._jobs.pop(job_id))
        return evicted
