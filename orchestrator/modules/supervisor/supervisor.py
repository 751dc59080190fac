"""
Execution Supervisor for the orchestrator.

Owns the work queue and a fixed pool of worker tasks. Each worker takes the
next job in submission order, validates it, runs it as a subprocess without a
shell, streams its output into the job's ring, and enforces a wall-clock
timeout with a graceful-then-forceful termination.
"""

import asyncio
import logging
import os
from typing import Callable, List, Optional

from ...config import ExecutionConfig
from ..broadcast import OutputRing
from ..jobs import SPAWN_FAILURE_EXIT_CODE, Job, JobStatus, JobStore
from ..policy import CommandRejectedError, SpawnSpec

logger = logging.getLogger("orchestrator.supervisor")

CommandBuilder = Callable[[str], SpawnSpec]

# Max bytes buffered for a single output line
LINE_LIMIT = 1024 * 1024
# How long to wait for output readers once the process is gone
READER_DRAIN_SECONDS = 5.0

PREFIX = "[orchestrator]"


class ExecutionSupervisor:
    """Queued, bounded-concurrency subprocess execution."""

    def __init__(
        self,
        store: JobStore,
        builder: CommandBuilder,
        config: Optional[ExecutionConfig] = None,
    ):
        """
        Initialize supervisor.

        Args:
            store: Job store the supervisor owns writes to
            builder: Turns a command string into a SpawnSpec or raises
                CommandRejectedError
            config: Execution settings (timeouts, concurrency, buffer size)
        """
        self.store = store
        self.builder = builder
        self.config = config or ExecutionConfig()
        self._queue: "asyncio.Queue[Job]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._workers)

    def submit(self, command: str, run_id: Optional[str] = None) -> Job:
        """
        Create a job and enqueue it. Never waits for execution.

        Args:
            command: Command text as submitted
            run_id: Run correlation token the job belongs to

        Returns:
            The queued Job
        """
        job = Job(
            command=command,
            output=OutputRing(self.config.max_output_lines),
            run_id=run_id,
        )
        if job.run_id is None:
            job.run_id = job.id
        self.store.add(job)
        self._queue.put_nowait(job)
        logger.info(f"Queued job {job.id} (queue depth: {self.queue_depth})")
        return job

    def get(self, job_id: str) -> Job:
        """Look up a job by id. Raises JobNotFoundError for unknown ids."""
        return self.store.require(job_id)

    def start(self) -> None:
        """Start the worker tasks on the running event loop."""
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._worker(slot), name=f"orchestrator-worker-{slot}")
            for slot in range(self.config.concurrency)
        ]
        logger.info(f"Execution supervisor started with {self.config.concurrency} worker(s)")

    async def shutdown(self) -> None:
        """Stop workers, killing running processes and failing queued jobs."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        while not self._queue.empty():
            job = self._queue.get_nowait()
            self._queue.task_done()
            if not job.is_terminal:
                job.output.append(f"{PREFIX} shutting down before job started")
                self._complete(job, JobStatus.FAILED)
        logger.info("Execution supervisor stopped")

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _worker(self, slot: int) -> None:
        logger.debug(f"Worker {slot} started")
        while True:
            job = await self._queue.get()
            try:
                await self._run_job(job)
            except asyncio.CancelledError:
                if not job.is_terminal:
                    job.output.append(f"{PREFIX} shutting down, job aborted")
                    self._complete(job, JobStatus.FAILED, job.exit_code)
                raise
            except Exception as e:
                logger.exception(f"Internal error while running job {job.id}: {e}")
                job.output.append(f"{PREFIX} internal error: {e}")
                if not job.is_terminal:
                    self._complete(job, JobStatus.FAILED, job.exit_code)
            finally:
                self._queue.task_done()

    async def _run_job(self, job: Job) -> None:
        job.mark_running()
        logger.info(f"Starting job {job.id}: {job.command}")

        try:
            spec = self.builder(job.command)
        except CommandRejectedError as e:
            logger.warning(f"Job {job.id} rejected: {e.reason}")
            job.output.append(f"{PREFIX} rejected: {e.reason}")
            self._complete(job, JobStatus.FAILED)
            return

        job.set_resolved(spec.argv, spec.working_directory)
        job.output.append(f"{PREFIX} running: {spec.display()}")
        job.output.append(f"{PREFIX} cwd: {spec.working_directory}")

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.working_directory,
                env=self._build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=LINE_LIMIT,
            )
        except OSError as e:
            logger.error(f"Job {job.id} failed to spawn: {e}")
            job.output.append(f"{PREFIX} spawn error: {e}")
            self._complete(job, JobStatus.FAILED, SPAWN_FAILURE_EXIT_CODE)
            return

        job.process = process
        readers = [
            asyncio.create_task(self._pump(job, process.stdout)),
            asyncio.create_task(self._pump(job, process.stderr)),
        ]

        try:
            exit_code = await self._wait_with_timeout(job, process)
            await self._drain(job, readers)
        except asyncio.CancelledError:
            job.output.append(f"{PREFIX} shutting down, killing process")
            self._signal(process.kill)
            for task in readers:
                task.cancel()
            try:
                await asyncio.wait_for(process.wait(), timeout=READER_DRAIN_SECONDS)
            except asyncio.TimeoutError:
                logger.error(f"Job {job.id}: process {process.pid} did not exit after SIGKILL")
            job.exit_code = process.returncode
            raise

        job.output.append(f"{PREFIX} exited with code {exit_code}")
        status = JobStatus.SUCCEEDED if exit_code == 0 else JobStatus.FAILED
        self._complete(job, status, exit_code)

    async def _wait_with_timeout(self, job: Job, process: asyncio.subprocess.Process) -> int:
        """
        Wait for the process, escalating SIGTERM then SIGKILL on timeout.

        Both escalation steps are written to the job output.
        """
        timeout = self.config.command_timeout_seconds
        grace = self.config.terminate_grace_seconds

        try:
            return await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

        job.timed_out = True
        logger.warning(f"Job {job.id} timed out after {timeout:g}s, sending SIGTERM")
        job.output.append(f"{PREFIX} timeout after {timeout:g}s, sending SIGTERM...")
        self._signal(process.terminate)

        try:
            return await asyncio.wait_for(process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            pass

        logger.warning(f"Job {job.id} ignored SIGTERM, sending SIGKILL")
        job.output.append(f"{PREFIX} still running after {grace:g}s grace, sending SIGKILL...")
        self._signal(process.kill)
        return await process.wait()

    async def _pump(self, job: Job, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                job.output.append(f"{PREFIX} dropped an output line longer than {LINE_LIMIT} bytes")
                continue
            if not raw:
                break
            text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if text:
                job.output.append(text)

    async def _drain(self, job: Job, readers: List[asyncio.Task]) -> None:
        """Let readers finish the remaining output; abandon them if pipes stay open."""
        done, pending = await asyncio.wait(readers, timeout=READER_DRAIN_SECONDS)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Job {job.id}: output still open after exit, detaching readers")
            await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            exc = task.exception()
            if exc is not None:
                logger.error(f"Job {job.id}: output reader failed: {exc}")
                job.output.append(f"{PREFIX} output reader failed: {exc}")

    def _complete(self, job: Job, status: JobStatus, exit_code: Optional[int] = None) -> None:
        job.finish(status, exit_code)
        job.output.close(job.completion_event())
        logger.info(
            f"Job {job.id} finished: {job.status.value} (exit code: {job.exit_code})"
        )

    def _build_env(self) -> dict:
        env = dict(os.environ)
        for key, value in self.config.extra_env.items():
            env.setdefault(key, value)
        return env

    @staticmethod
    def _signal(action: Callable[[], None]) -> None:
        try:
            action()
        except ProcessLookupError:
            pass
