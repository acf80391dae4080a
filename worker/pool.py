"""
Worker pool — a bounded thread pool plus the set of job ids in flight.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    WorkerPool                            │
    │                                                         │
    │  SchedulerTicker                                        │
    │  ┌───────────────────────┐                              │
    │  │ due jobs from store   │  ← every poll interval       │
    │  └──────────┬────────────┘                              │
    │             │ submit()  (refused when full / in flight)  │
    │             ▼                                            │
    │  ┌──────────────────────────────────────────┐           │
    │  │ ThreadPoolExecutor (MAX_CONCURRENT_JOBS)  │           │
    │  │  ┌────────┐ ┌────────┐ ┌────────┐ ┌────────┐       │
    │  │  │Thread 1│ │Thread 2│ │Thread 3│ │Thread 4│       │
    │  │  │execute │ │execute │ │execute │ │(idle)  │       │
    │  │  └────────┘ └────────┘ └────────┘ └────────┘       │
    │  └──────────────────────────────────────────┘           │
    └─────────────────────────────────────────────────────────┘

submit() never blocks. A job that does not fit stays PENDING in the store
and is offered again on a later tick, so the ticker is never held up by a
slow handler.

The in-flight set is what keeps the same row from being dispatched twice:
a job stays in it from submit() until its execute() returns, covering the
window where the row still reads PENDING before the executor claims it.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future

from store.job_store import JobRecord
from worker.executor import JobExecutor

logger = logging.getLogger(__name__)


class WorkerPool:

    def __init__(self, executor: JobExecutor, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._job_executor = executor
        self._max_concurrent = max_concurrent
        self._threads = ThreadPoolExecutor(max_workers=max_concurrent, thread_name_prefix="job-worker")
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._stopped = False

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def in_flight_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._in_flight)

    def available_slots(self) -> int:
        with self._lock:
            return 0 if self._stopped else self._max_concurrent - len(self._in_flight)

    def submit(self, job: JobRecord) -> bool:
        """Hand `job` to a worker thread. False if the pool is full, stopped, or already has it."""
        with self._lock:
            if self._stopped or job.id in self._in_flight:
                return False
            if len(self._in_flight) >= self._max_concurrent:
                return False
            self._in_flight.add(job.id)

        try:
            future: Future = self._threads.submit(self._job_executor.execute, job)
        except RuntimeError as e:
            # executor already shut down
            logger.error(f"Could not submit job {job.id}: {e}")
            self._release(job.id)
            return False
        future.add_done_callback(lambda f, job_id=job.id: self._on_job_done(job_id, f))
        logger.debug(f"Dispatched job {job.id} to thread pool")
        return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is in flight. False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._in_flight, timeout=timeout)

    def stop(self, wait: bool = True) -> None:
        """Refuse new work, then shut down the thread pool."""
        with self._lock:
            self._stopped = True
        self._threads.shutdown(wait=wait)
        logger.info("Worker pool stopped")

    def _release(self, job_id: str) -> None:
        with self._idle:
            self._in_flight.discard(job_id)
            self._idle.notify_all()

    def _on_job_done(self, job_id: str, future: Future) -> None:
        """
        Callback fired when a worker thread finishes executing a job.

        All normal success/failure handling happens inside
        JobExecutor.execute(); this only frees the slot and logs anything
        that escaped it.
        """
        try:
            exc = future.exception()
            if exc:
                logger.error(f"Unhandled worker exception for job {job_id}: {exc}")
        finally:
            self._release(job_id)
