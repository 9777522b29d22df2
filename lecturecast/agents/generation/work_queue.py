"""
Typed in-process job queues with bounded worker pools.

A WorkQueue holds jobs in FIFO order of eligibility. Jobs may carry a minimum
eligibility delay. A WorkerPool claims jobs with a fixed number of workers, so
completion order across jobs is not guaranteed once concurrency is above one.
Failed jobs are retried under the queue's RetryPolicy and, once attempts run
out, kept in a failure set for diagnostics.
"""

import asyncio
import time
import uuid
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Generic, List, Optional, TypeVar

from lecturecast.agents.domain.models import Job, JobStatus
from lecturecast.agents.generation.exceptions import JobFailedError
from lecturecast.agents.generation.retry_policy import RetryPolicy
from lecturecast.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FailedCallback = Callable[[Job, BaseException], Any]


class WorkQueue(Generic[T]):
    """Named FIFO queue of jobs carrying payloads of type T."""

    def __init__(
        self,
        name: str,
        retry_policy: Optional[RetryPolicy] = None,
        keep_completed_seconds: float = 3600,
        keep_completed_count: int = 1000,
        keep_failed_seconds: float = 86400,
    ):
        self.name = name
        self.retry_policy = retry_policy or RetryPolicy()
        self.keep_completed_seconds = keep_completed_seconds
        self.keep_completed_count = keep_completed_count
        self.keep_failed_seconds = keep_failed_seconds

        self.jobs: Dict[str, Job[T]] = {}
        self._ready: "asyncio.Queue[Job[T]]" = asyncio.Queue()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._completed: Deque[str] = deque()
        self._failed: Deque[str] = deque()
        self._failed_callbacks: List[FailedCallback] = []
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def add(self, name: str, data: T, delay: float = 0.0, job_id: Optional[str] = None) -> Job[T]:
        """Enqueue a job; a positive delay sets its earliest start time."""
        if self._closed:
            raise RuntimeError(f"Queue {self.name} is closed")

        if job_id and job_id in self.jobs:
            existing = self.jobs[job_id]
            if existing.status not in (JobStatus.COMPLETED, JobStatus.FAILED):
                logger.debug(f"[QUEUE:{self.name}] Job {job_id} already queued")
                return existing
            for finished in (self._completed, self._failed):
                if job_id in finished:
                    finished.remove(job_id)
            self._forget(job_id)

        job = Job(id=job_id or uuid.uuid4().hex, name=name, data=data)
        self.jobs[job.id] = job
        self._pending += 1
        self._idle.clear()
        self._schedule(job, delay)
        logger.debug(f"[QUEUE:{self.name}] Added {name} job {job.id} delay={delay:.2f}s")
        return job

    def _schedule(self, job: Job[T], delay: float) -> None:
        job.ready_at = time.time() + max(0.0, delay)
        if delay > 0:
            job.status = JobStatus.DELAYED
            loop = asyncio.get_running_loop()
            self._timers[job.id] = loop.call_later(delay, self._make_ready, job)
        else:
            self._make_ready(job)

    def _make_ready(self, job: Job[T]) -> None:
        self._timers.pop(job.id, None)
        if self._closed:
            return
        job.status = JobStatus.WAITING
        self._ready.put_nowait(job)

    def on_failed(self, callback: FailedCallback) -> None:
        """Register a callback fired once a job has exhausted its attempts."""
        self._failed_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Consumer side (used by WorkerPool)
    # ------------------------------------------------------------------

    async def claim(self) -> Job[T]:
        job = await self._ready.get()
        job.status = JobStatus.ACTIVE
        job.attempts_made += 1
        return job

    def complete(self, job: Job[T], result: Any = None) -> None:
        job.status = JobStatus.COMPLETED
        job.result = result
        job.finished_at = time.time()
        self._completed.append(job.id)
        self._settle()
        self._prune()

    def retry(self, job: Job[T], error: BaseException) -> float:
        delay = self.retry_policy.delay_for(job.attempts_made, error)
        job.error = str(error)
        logger.warning(
            f"[QUEUE:{self.name}] Job {job.id} ({job.name}) attempt {job.attempts_made}/"
            f"{self.retry_policy.attempts} failed: {error}; retrying in {delay:.2f}s"
        )
        self._schedule(job, delay)
        return delay

    async def fail(self, job: Job[T], error: BaseException) -> None:
        job.status = JobStatus.FAILED
        job.error = str(error)
        job.finished_at = time.time()
        self._failed.append(job.id)
        logger.error(
            f"[QUEUE:{self.name}] Job {job.id} ({job.name}) failed permanently",
            exc_info=(type(error), error, error.__traceback__),
        )
        failure = JobFailedError(job.id, job.attempts_made, cause=error if isinstance(error, Exception) else None)
        for callback in self._failed_callbacks:
            try:
                result = callback(job, failure)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"[QUEUE:{self.name}] Failed-job callback raised: {e}")
        self._settle()
        self._prune()

    def _settle(self) -> None:
        self._pending -= 1
        if self._pending <= 0:
            self._pending = 0
            self._idle.set()

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def _forget(self, job_id: str) -> None:
        self.jobs.pop(job_id, None)

    def _prune(self) -> None:
        now = time.time()
        while self._completed and (
            len(self._completed) > self.keep_completed_count
            or self._age(self._completed[0], now) > self.keep_completed_seconds
        ):
            self._forget(self._completed.popleft())
        while self._failed and self._age(self._failed[0], now) > self.keep_failed_seconds:
            self._forget(self._failed.popleft())

    def _age(self, job_id: str, now: float) -> float:
        job = self.jobs.get(job_id)
        if job is None or job.finished_at is None:
            return float("inf")
        return now - job.finished_at

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        for job in self.jobs.values():
            counts[job.status.value] += 1
        return counts

    def failed_jobs(self) -> List[Job[T]]:
        return [self.jobs[job_id] for job_id in self._failed if job_id in self.jobs]

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until no job is waiting, delayed or active."""
        await asyncio.wait_for(self._idle.wait(), timeout)

    def close(self) -> None:
        self._closed = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()


class WorkerPool(Generic[T]):
    """Fixed number of workers processing jobs from one WorkQueue."""

    def __init__(
        self,
        queue: WorkQueue[T],
        processor: Callable[[Job[T]], Awaitable[Any]],
        concurrency: int = 1,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self._workers: List[asyncio.Task] = []
        self.active = 0

    def start(self) -> None:
        if self._workers:
            return
        for i in range(self.concurrency):
            self._workers.append(
                asyncio.create_task(self._run(i), name=f"{self.queue.name}-worker-{i}")
            )
        logger.info(f"[QUEUE:{self.queue.name}] Started {self.concurrency} workers")

    async def _run(self, worker_index: int) -> None:
        while True:
            job = await self.queue.claim()
            self.active += 1
            try:
                result = await self.processor(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self.queue.retry_policy.should_retry(e, job.attempts_made):
                    self.queue.retry(job, e)
                else:
                    await self.queue.fail(job, e)
            else:
                self.queue.complete(job, result)
            finally:
                self.active -= 1

    async def close(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self.queue.close()
