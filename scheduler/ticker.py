"""
Scheduler ticker — the polling loop that moves due jobs into the worker pool.

Runs in a daemon thread. Every POLL_INTERVAL_MS it executes one tick:

    1. How many worker slots are free?           → none: nothing to do
    2. Fetch due PENDING jobs (run_at <= now), oldest first, skipping ids
       already in flight, at most min(BATCH_LIMIT, free slots)
    3. plan_dispatch() picks what to submit       (pure, unit-tested)
    4. Submit each picked job to the pool

         SQLite                    ticker                  WorkerPool
    ┌──────────────┐  fetch  ┌──────────────┐ submit ┌──────────────────┐
    │ due PENDING  │───────> │plan_dispatch │──────> │ thread per job   │
    └──────────────┘         └──────────────┘        └──────────────────┘

Ticks never overlap: tick() takes a non-blocking lock and returns None if a
previous tick (or a manual tick from a test) still holds it. Jobs that did
not fit stay PENDING and due, so a later tick picks them up.

Only one ticker may run against a given database file. There is no leader
election; two processes polling the same file can dispatch the same job twice.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from models.timestamps import utcnow
from store.job_store import JobRecord, JobStore
from worker.pool import WorkerPool

logger = logging.getLogger(__name__)


def plan_dispatch(
    due: Iterable[JobRecord],
    in_flight: Iterable[str],
    capacity: int,
) -> list[JobRecord]:
    """
    Choose which due jobs to hand to the pool this tick.

    Keeps the store's ordering, drops anything already in flight (or listed
    twice), and stops at `capacity`.
    """
    if capacity <= 0:
        return []
    taken = set(in_flight)
    selected: list[JobRecord] = []
    for job in due:
        if len(selected) >= capacity:
            break
        if job.id in taken:
            continue
        taken.add(job.id)
        selected.append(job)
    return selected


class SchedulerTicker:

    def __init__(
        self,
        store: JobStore,
        pool: WorkerPool,
        interval: timedelta,
        batch_limit: int,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._pool = pool
        self._interval = interval.total_seconds()
        self._batch_limit = batch_limit
        self._clock = clock
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> Optional[int]:
        """Run one poll/dispatch cycle. Returns jobs dispatched, or None if skipped."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous tick still running, skipping")
            return None
        try:
            capacity = self._pool.available_slots()
            if capacity <= 0:
                return 0
            in_flight = self._pool.in_flight_ids()
            due = self._store.fetch_due_jobs(
                self._clock(),
                limit=min(self._batch_limit, capacity),
                exclude_ids=in_flight,
            )
            dispatched = 0
            for job in plan_dispatch(due, in_flight, capacity):
                if self._pool.submit(job):
                    dispatched += 1
            if dispatched:
                logger.info(f"Dispatched {dispatched} due jobs")
            return dispatched
        finally:
            self._tick_lock.release()

    def start(self) -> None:
        """Start the polling loop in a daemon thread."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="scheduler-ticker", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler ticker started (interval {self._interval:.1f}s, batch {self._batch_limit})")

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler ticker stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick error: {e}", exc_info=True)
            self._stop_event.wait(self._interval)
