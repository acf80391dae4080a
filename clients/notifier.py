"""
Notification side channel.

Job outcomes are not returned to whoever fired the trigger; they are announced
here. Delivery is fire-and-forget: safe_notify() logs a notifier failure and
moves on, so a broken mail relay can never fail a job.
"""

import logging
from abc import ABC, abstractmethod

from jobs.errors import format_error, redact

logger = logging.getLogger(__name__)


class Notifier(ABC):

    @abstractmethod
    def success(self, subject: str, body: str) -> None: ...

    @abstractmethod
    def failure(self, subject: str, body: str) -> None: ...


class LoggingNotifier(Notifier):
    """Writes notifications to the log. Default when no mail transport is configured."""

    def success(self, subject: str, body: str) -> None:
        logger.info(f"[notify:success] {subject} | {redact(body)}")

    def failure(self, subject: str, body: str) -> None:
        logger.warning(f"[notify:failure] {subject} | {redact(body)}")


def safe_notify(notifier: Notifier | None, ok: bool, subject: str, body: str) -> None:
    if notifier is None:
        return
    try:
        if ok:
            notifier.success(subject, body)
        else:
            notifier.failure(subject, body)
    except Exception as e:
        logger.error(f"Notifier failed for '{subject}': {format_error(e)}")
