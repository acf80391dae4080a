"""
Job executor — runs a single job inside a worker thread.

This is the code that actually DOES THE WORK. Each worker thread calls
executor.execute(job), and this method handles the full lifecycle:

    1. Find the right handler (createFromCandidate, disableUser, deleteUser)
       → unknown type: mark FAILED straight from PENDING, never retried
    2. Mark RUNNING: attempts + 1, last_error cleared
    3. Call handler.run(payload)
    4. On success: mark DONE, store the result, send a success notification
    5. On failure: delegate to RetryHandler (retry with backoff vs failed)

execute() never raises. Whatever a handler throws ends up as a state
transition on the row; the worker thread and the ticker never see it.

Thread safety:
- The store serializes its own writes
- Handlers hold no per-job state
So multiple threads can call execute() simultaneously without locks.
"""

import dataclasses
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from clients.notifier import Notifier, safe_notify
from jobs.errors import format_error
from jobs.registry import JobRegistry, UnknownJobTypeError
from models.enums import JobStatus
from models.timestamps import utcnow
from store.job_store import JobRecord, JobStore
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


class JobExecutor:

    def __init__(
        self,
        store: JobStore,
        registry: JobRegistry,
        retry_handler: RetryHandler,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._registry = registry
        self._retry_handler = retry_handler
        self._notifier = notifier
        self._clock = clock

    def execute(self, job: JobRecord) -> dict:
        """
        Execute a single job. Called by WorkerPool from a thread.

        Returns:
            dict with execution status (for logging/tests, not stored)
        """
        try:
            return self._execute(job)
        except Exception as e:
            logger.error(f"Job {job.id} [{job.job_type}] crashed the executor: {format_error(e)}", exc_info=True)
            return {"status": "error", "job_id": job.id, "error": format_error(e)}

    def _execute(self, job: JobRecord) -> dict:
        # ── Step 1: Find handler ────────────────────────────────
        try:
            handler = self._registry.get(job.job_type)
        except UnknownJobTypeError as e:
            self._store.mark_job(job.id, status=JobStatus.FAILED, last_error=str(e))
            logger.error(f"Job {job.id}: {e}")
            safe_notify(self._notifier, False, f"{job.job_type} failed for {job.id}", str(e))
            return {"status": JobStatus.FAILED.value, "job_id": job.id, "error": str(e)}

        # ── Step 2: Mark RUNNING ────────────────────────────────
        attempts = job.attempts + 1
        if not self._store.mark_job(job.id, status=JobStatus.RUNNING, attempts=attempts, last_error=None):
            logger.warning(f"Job {job.id} could not be claimed (status {job.status}), skipping")
            return {"status": "skipped", "job_id": job.id}
        running = dataclasses.replace(job, status=JobStatus.RUNNING.value, attempts=attempts, last_error=None)

        # ── Step 3: Run handler ─────────────────────────────────
        start_time = time.monotonic()
        try:
            result = handler.run(dict(job.payload))
        except Exception as e:
            # ── Step 5: Handle failure ──────────────────────────
            logger.error(f"Job {job.id} [{job.job_type}] attempt {attempts} failed: {format_error(e)}")
            status = self._retry_handler.handle_failure(running, e)
            return {"status": status.value, "job_id": job.id, "error": format_error(e)}
        elapsed = time.monotonic() - start_time

        # ── Step 4: Mark DONE ───────────────────────────────────
        result = {**(result or {}), "executionTimeSec": round(elapsed, 3)}
        if not self._store.mark_job(job.id, status=JobStatus.DONE, result=result):
            logger.error(f"Job {job.id} finished but its result could not be stored")
        logger.info(f"Job {job.id} [{job.job_type}] done in {elapsed:.3f}s")

        failed_steps = result.get("failedSteps") or []
        body = f"job={job.id} action={result.get('action')}"
        if failed_steps:
            body += f" failedSteps={failed_steps}"
        safe_notify(
            self._notifier,
            True,
            f"{job.job_type} done for {job.correlation_id or job.id}",
            body,
        )
        return {"status": JobStatus.DONE.value, "job_id": job.id, "result": result}
