"""
Retry handler — decides what happens when a job fails.

Three outcomes:
1. FatalError (not found, precondition)   → FAILED now, attempts don't matter
2. attempts < max_attempts                → back to PENDING, run_at pushed out by backoff
3. attempts >= max_attempts               → FAILED

Lifecycle on failure:
    RUNNING → (error) → PENDING  run_at = now + backoff(attempts)   (if attempts left)
    RUNNING → (error) → FAILED                                      (fatal or exhausted)

A retry is a PENDING row with a later run_at: the ticker picks it up like any
other due job, and the worker slot is free in the meantime.

Backoff for attempt n (1-based):

    raw   = min(base * multiplier^(n-1), cap)
    delay = raw * (1 ± jitter), clamped to [minimum, cap]
"""

import logging
import random
from datetime import datetime, timedelta
from typing import Callable, Optional

from clients.notifier import Notifier, safe_notify
from jobs.errors import FatalError, format_error
from models.enums import JobStatus
from models.timestamps import utcnow
from store.job_store import JobRecord, JobStore

logger = logging.getLogger(__name__)


def compute_backoff_delay(
    attempt: int,
    base: float,
    multiplier: float,
    cap: float,
    jitter: float = 0.0,
    minimum: float = 0.0,
    rng: Optional[random.Random] = None,
) -> float:
    """Seconds to wait before attempt `attempt` + 1. See module docstring."""
    n = max(attempt, 1)
    try:
        raw = min(base * (multiplier ** (n - 1)), cap)
    except OverflowError:
        raw = cap
    if jitter:
        spread = (rng or random).uniform(-jitter, jitter)
        raw = raw * (1 + spread)
    return max(minimum, min(raw, cap))


class RetryHandler:

    def __init__(
        self,
        store: JobStore,
        max_attempts: int,
        backoff_base: float,
        backoff_multiplier: float,
        backoff_cap: float,
        backoff_jitter: float = 0.0,
        backoff_min: float = 0.0,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_multiplier = backoff_multiplier
        self._backoff_cap = backoff_cap
        self._backoff_jitter = backoff_jitter
        self._backoff_min = backoff_min
        self._notifier = notifier
        self._clock = clock
        self._rng = rng

    def backoff_delay(self, attempt: int) -> timedelta:
        seconds = compute_backoff_delay(
            attempt,
            self._backoff_base,
            self._backoff_multiplier,
            self._backoff_cap,
            jitter=self._backoff_jitter,
            minimum=self._backoff_min,
            rng=self._rng,
        )
        return timedelta(seconds=seconds)

    def handle_failure(self, job: JobRecord, error: BaseException) -> JobStatus:
        """
        Called by JobExecutor when a handler raises. `job` is the running
        snapshot (attempts already counts the attempt that just failed).

        Returns the status the job was moved to.
        """
        message = format_error(error)

        if isinstance(error, FatalError):
            self._fail(job, message, reason="fatal error")
            return JobStatus.FAILED

        if job.attempts < self._max_attempts:
            delay = self.backoff_delay(job.attempts)
            run_at = self._clock() + delay
            self._store.mark_job(
                job.id,
                status=JobStatus.PENDING,
                run_at=run_at,
                last_error=message,
            )
            logger.info(
                f"Job {job.id} [{job.job_type}] will be retried in {delay.total_seconds():.0f}s "
                f"({job.attempts}/{self._max_attempts})"
            )
            return JobStatus.PENDING

        self._fail(job, message, reason=f"exhausted {self._max_attempts} attempts")
        return JobStatus.FAILED

    def _fail(self, job: JobRecord, message: str, reason: str) -> None:
        self._store.mark_job(job.id, status=JobStatus.FAILED, last_error=message)
        logger.warning(f"Job {job.id} [{job.job_type}] failed ({reason}): {message}")
        safe_notify(
            self._notifier,
            False,
            f"{job.job_type} failed for {job.correlation_id or job.id}",
            f"job={job.id} attempts={job.attempts} reason={reason}\n{message}",
        )
