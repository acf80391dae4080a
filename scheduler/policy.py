"""
Scheduling policy — turns a business date into the instant a job should run.

Pure functions only: no clock reads, no I/O. The caller passes `now`, the
business time zone and the configured execution time, and gets back an aware
UTC datetime that the store persists as naive UTC.

Pre-hire (join date known):

    target = (join_date − offset_days) at exec_hour:exec_minute in the business zone
    target > now  → run at target
    otherwise     → run at now + quick_fallback     (the date already slipped by)

Pre-hire (join date missing or unparseable) → now + quick_fallback.

Offboarding targets the exit date itself at the offboarding hour/minute, with
no offset. If that instant is not in the future the caller performs the
action immediately instead of scheduling a job.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


# Reasons recorded alongside a decision, surfaced in logs and API responses.
REASON_BUSINESS_DATE = "business-date"
REASON_PAST_TO_QUICK = "business-date-in-past->quick"
REASON_NO_DATE_TO_QUICK = "no-date->quick"

_DATE_FORMATS = ("%d-%m-%Y", "%Y-%m-%d")


@dataclass(frozen=True)
class ScheduleDecision:
    run_at: datetime   # aware UTC
    reason: str

    @property
    def is_quick_fallback(self) -> bool:
        return self.reason != REASON_BUSINESS_DATE


def _zone(zone) -> ZoneInfo:
    return zone if isinstance(zone, ZoneInfo) else ZoneInfo(str(zone))


def parse_business_date(value, zone=None) -> Optional[date]:
    """
    Parse an HR date field.

    Accepts dd-mm-yyyy (the HR system's format) and ISO yyyy-mm-dd. An ISO
    datetime string is reduced to its date part; when it carries an offset
    and `zone` is given, the date is the one it falls on in `zone`.
    Anything else → None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _local_date(value, zone)
    if isinstance(value, date):
        return value

    raw = str(value).strip()
    if not raw:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    try:
        return _local_date(datetime.fromisoformat(raw.replace("Z", "+00:00")), zone)
    except ValueError:
        return None


def _local_date(moment: datetime, zone) -> date:
    if zone is None or moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(_zone(zone)).date()


def at_local_time(day: date, hour: int, minute: int, zone) -> datetime:
    """`day` at hour:minute wall-clock time in `zone`, as aware UTC."""
    local = datetime.combine(day, time(hour=hour, minute=minute), tzinfo=_zone(zone))
    return local.astimezone(timezone.utc)


def compute_run_at(
    business_date,
    exec_hour: int,
    exec_minute: int,
    offset_days: int,
    zone,
    now: datetime,
    quick_fallback: timedelta,
) -> ScheduleDecision:
    """Decide when a business-date-driven job runs. See the module docstring."""
    now = now.astimezone(timezone.utc)
    day = parse_business_date(business_date, zone)
    if day is None:
        return ScheduleDecision(run_at=now + quick_fallback, reason=REASON_NO_DATE_TO_QUICK)

    target = at_local_time(day - timedelta(days=offset_days), exec_hour, exec_minute, zone)
    if target > now:
        return ScheduleDecision(run_at=target, reason=REASON_BUSINESS_DATE)
    return ScheduleDecision(run_at=now + quick_fallback, reason=REASON_PAST_TO_QUICK)


def compute_exit_instant(exit_date, exec_hour: int, exec_minute: int, zone) -> Optional[datetime]:
    """Exit date at the offboarding hour/minute in `zone`, or None without a usable date."""
    day = parse_business_date(exit_date, zone)
    if day is None:
        return None
    return at_local_time(day, exec_hour, exec_minute, zone)


def is_due(instant: Optional[datetime], now: datetime) -> bool:
    """True when an offboarding action should run now rather than be scheduled."""
    return instant is None or instant <= now
