"""
Shared httpx plumbing for the outbound clients.

Maps transport failures and HTTP status codes onto the job error taxonomy so
that handlers never see an httpx exception:

    timeout / connection error / 429 / 5xx  → RecoverableError
    404                                      → NotFoundError
    other 4xx                                → FatalError

Timeouts are enforced here, per call; the scheduler never interrupts a
running handler.

Transient failures (timeouts, connection errors, 429, 5xx) are retried
inside the call with exponential backoff before any of that mapping
happens, so the synchronous webhook paths ride out a brief throttle the
same way scheduled jobs do. Only idempotent methods are retried unless the
caller says otherwise; a replayed POST could create a second principal.
"""

import logging
from dataclasses import dataclass

import httpx
import tenacity
from tenacity import retry_if_exception_type, retry_if_result

from jobs.errors import RecoverableError, NotFoundError, FatalError

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE", "PATCH"})


@dataclass(frozen=True)
class RetryPolicy:
    """In-call retry for transient HTTP failures. `attempts` counts the first try."""
    attempts: int = 3
    base_delay: float = 0.3
    max_delay: float = 5.0
    jitter: float = 0.1


DEFAULT_RETRY_POLICY = RetryPolicy()
NO_RETRY = RetryPolicy(attempts=1)


def is_transient_status(status: int) -> bool:
    return status == 429 or status >= 500


def _body(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text[:2000]


def raise_for_job_error(response: httpx.Response, what: str) -> None:
    status = response.status_code
    if status < 400:
        return
    if is_transient_status(status):
        raise RecoverableError(f"{what}: HTTP {status}", detail=_body(response))
    if status == 404:
        raise NotFoundError(f"{what}: not found", detail=_body(response))
    raise FatalError(f"{what}: HTTP {status}", detail=_body(response))


def _retrying(policy: RetryPolicy) -> tenacity.Retrying:
    return tenacity.Retrying(
        stop=tenacity.stop_after_attempt(max(policy.attempts, 1)),
        wait=(
            tenacity.wait_exponential(multiplier=policy.base_delay, max=policy.max_delay)
            + tenacity.wait_random(0, policy.jitter)
        ),
        retry=(
            retry_if_exception_type(httpx.TransportError)
            | retry_if_result(lambda response: is_transient_status(response.status_code))
        ),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        # hand back the last response (or re-raise the last transport error)
        # instead of tenacity's RetryError
        retry_error_callback=lambda state: state.outcome.result(),
    )


def send(
    client: httpx.Client,
    method: str,
    url: str,
    what: str,
    retry: RetryPolicy = DEFAULT_RETRY_POLICY,
    idempotent: bool | None = None,
    **kwargs,
) -> httpx.Response:
    """
    Issue a request, retrying transient failures, and convert transport
    errors that outlast the retries to RecoverableError.

    The last response is returned as-is even when its status is still
    transient; callers map it with raise_for_job_error.
    """
    if idempotent is None:
        idempotent = method.upper() in IDEMPOTENT_METHODS
    if not idempotent:
        retry = NO_RETRY
    try:
        response = _retrying(retry)(client.request, method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise RecoverableError(f"{what}: timed out") from e
    except httpx.TransportError as e:
        raise RecoverableError(f"{what}: {e.__class__.__name__}: {e}") from e
    logger.debug(f"{method} {url} → {response.status_code}")
    return response
