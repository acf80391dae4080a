"""
Wiring — builds the object graph both entry points run.

    JobStore ─┬─ DedupIndex ─┬─ JobRegistry (handlers) ─ JobExecutor ─ WorkerPool ─ SchedulerTicker
              │              └─ TriggerService
              └─ BusinessIdAllocator

build_runtime() is the only place that reads `settings`; everything below it
gets plain constructor arguments. Tests call it with their own Settings,
database path, fake clients and clock.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from clients.directory import DirectoryClient, GraphDirectoryClient
from clients.hr import HRClient, ZohoPeopleClient
from clients.http import RetryPolicy
from clients.notifier import LoggingNotifier, Notifier
from config.settings import Settings
from jobs.registry import JobRegistry, build_registry
from models.timestamps import utcnow
from scheduler.dedup import DedupIndex
from scheduler.ticker import SchedulerTicker
from services.employee_id import BusinessIdAllocator
from services.triggers import TriggerConfig, TriggerService
from store.job_store import JobStore
from worker.executor import JobExecutor
from worker.pool import WorkerPool
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    store: JobStore
    dedup: DedupIndex
    registry: JobRegistry
    executor: JobExecutor
    pool: WorkerPool
    ticker: SchedulerTicker
    triggers: TriggerService
    closeables: list = field(default_factory=list)

    def start_scheduler(self, stale_running_after=None) -> None:
        """Reset orphaned running rows, then start polling."""
        if stale_running_after is not None:
            self.store.reconcile_stale_running(stale_running_after)
        self.ticker.start()

    def close(self, timeout: float | None = 30.0) -> None:
        self.ticker.stop(timeout)
        self.pool.stop(wait=True)
        for closeable in self.closeables:
            closeable.close()
        self.store.close()


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        attempts=settings.HTTP_RETRY_ATTEMPTS,
        base_delay=settings.HTTP_RETRY_BASE_SECONDS,
        max_delay=settings.HTTP_RETRY_MAX_SECONDS,
    )


def build_directory_client(settings: Settings) -> GraphDirectoryClient:
    return GraphDirectoryClient(
        tenant_id=settings.DIRECTORY_TENANT_ID,
        client_id=settings.DIRECTORY_CLIENT_ID,
        client_secret=settings.DIRECTORY_CLIENT_SECRET,
        base_url=settings.DIRECTORY_BASE_URL,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        retry_policy=build_retry_policy(settings),
        temp_password=settings.DIRECTORY_TEMP_PASSWORD,
    )


def build_hr_client(settings: Settings) -> Optional[ZohoPeopleClient]:
    if not settings.HR_REFRESH_TOKEN:
        logger.warning("HR credentials not configured, HR write-back and id lookup disabled")
        return None
    return ZohoPeopleClient(
        base_url=settings.HR_BASE_URL,
        token_url=settings.HR_TOKEN_URL,
        client_id=settings.HR_CLIENT_ID,
        client_secret=settings.HR_CLIENT_SECRET,
        refresh_token=settings.HR_REFRESH_TOKEN,
        form_name=settings.HR_FORM_NAME,
        business_id_field=settings.HR_BUSINESS_ID_FIELD,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        retry_policy=build_retry_policy(settings),
    )


def build_runtime(
    settings: Settings,
    store: Optional[JobStore] = None,
    directory: Optional[DirectoryClient] = None,
    hr: Optional[HRClient] = None,
    notifier: Optional[Notifier] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Runtime:
    closeables = []
    if store is None:
        store = JobStore.open(settings.DATABASE_PATH, clock=clock)
    if directory is None:
        directory = build_directory_client(settings)
        closeables.append(directory)
    if hr is None:
        hr = build_hr_client(settings)
        if hr is not None:
            closeables.append(hr)
    if notifier is None:
        notifier = LoggingNotifier()

    # fail at startup, not on the first webhook
    ZoneInfo(settings.BUSINESS_TIMEZONE)

    dedup = DedupIndex(store, tolerance=settings.dedup_tolerance, cooldown=settings.cooldown)
    allocator = BusinessIdAllocator(store, hr, directory)
    registry = build_registry(
        directory,
        hr,
        dedup,
        allocator,
        default_domain=settings.DIRECTORY_DEFAULT_DOMAIN,
        official_email_field=settings.HR_OFFICIAL_EMAIL_FIELD,
        business_id_field=settings.HR_BUSINESS_ID_FIELD,
        zone=settings.BUSINESS_TIMEZONE,
        clock=clock,
    )
    retry_handler = RetryHandler(
        store,
        max_attempts=settings.MAX_ATTEMPTS,
        backoff_base=settings.BACKOFF_BASE_SECONDS,
        backoff_multiplier=settings.BACKOFF_MULTIPLIER,
        backoff_cap=settings.BACKOFF_CAP_SECONDS,
        backoff_jitter=settings.BACKOFF_JITTER,
        backoff_min=settings.BACKOFF_MIN_SECONDS,
        notifier=notifier,
        clock=clock,
    )
    executor = JobExecutor(store, registry, retry_handler, notifier=notifier, clock=clock)
    pool = WorkerPool(executor, max_concurrent=settings.MAX_CONCURRENT_JOBS)
    ticker = SchedulerTicker(
        store, pool, interval=settings.poll_interval, batch_limit=settings.BATCH_LIMIT, clock=clock
    )
    triggers = TriggerService(
        store,
        dedup,
        registry,
        directory,
        hr=hr,
        notifier=notifier,
        config=TriggerConfig(
            zone=settings.BUSINESS_TIMEZONE,
            prehire_hour=settings.PREHIRE_EXEC_HOUR,
            prehire_minute=settings.PREHIRE_EXEC_MINUTE,
            prehire_offset_days=settings.PREHIRE_OFFSET_DAYS,
            offboard_hour=settings.OFFBOARD_EXEC_HOUR,
            offboard_minute=settings.OFFBOARD_EXEC_MINUTE,
            quick_fallback=settings.quick_fallback,
            default_domain=settings.DIRECTORY_DEFAULT_DOMAIN,
            provisional_email_update=settings.PROVISIONAL_EMAIL_UPDATE,
            official_email_field=settings.HR_OFFICIAL_EMAIL_FIELD,
        ),
        clock=clock,
    )
    return Runtime(
        store=store,
        dedup=dedup,
        registry=registry,
        executor=executor,
        pool=pool,
        ticker=ticker,
        triggers=triggers,
        closeables=closeables,
    )
