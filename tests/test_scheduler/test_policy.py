"""
Tests for the scheduling policy.

All inputs are fixed instants, so the expected UTC values can be written out
by hand. Asia/Kolkata is UTC+05:30 with no DST, which keeps the arithmetic
readable: 14:45 IST = 09:15 UTC.
"""

from datetime import date, datetime, timedelta, timezone

from scheduler.policy import (
    REASON_BUSINESS_DATE,
    REASON_NO_DATE_TO_QUICK,
    REASON_PAST_TO_QUICK,
    compute_exit_instant,
    compute_run_at,
    is_due,
    parse_business_date,
)
from tests.fakes import T0

ZONE = "Asia/Kolkata"
QUICK = timedelta(minutes=2)


def _prehire(join_date, now=T0):
    return compute_run_at(join_date, 14, 45, 5, ZONE, now, QUICK)


def test_parse_business_date_formats():
    assert parse_business_date("20-11-2026") == date(2026, 11, 20)
    assert parse_business_date("2026-11-20") == date(2026, 11, 20)
    assert parse_business_date("2026-11-20T10:00:00Z") == date(2026, 11, 20)
    assert parse_business_date(date(2026, 1, 2)) == date(2026, 1, 2)


def test_parse_business_date_reads_aware_timestamps_in_zone():
    # 20:00 UTC is already the next morning in Kolkata
    assert parse_business_date("2026-11-20T20:00:00Z", "Asia/Kolkata") == date(2026, 11, 21)
    assert parse_business_date("2026-11-20T20:00:00Z") == date(2026, 11, 20)
    assert parse_business_date("2026-11-20T20:00:00", "Asia/Kolkata") == date(2026, 11, 20)
    assert parse_business_date("20-11-2026", "Asia/Kolkata") == date(2026, 11, 20)


def test_parse_business_date_rejects_garbage():
    assert parse_business_date(None) is None
    assert parse_business_date("") is None
    assert parse_business_date("next tuesday") is None
    assert parse_business_date("31-02-2026") is None


def test_join_date_twenty_days_out():
    """join date = now + 20 days, offset 5, 14:45 IST → (join − 5d) 09:15 UTC."""
    join = (T0 + timedelta(days=20)).date()

    decision = _prehire(join.strftime("%d-%m-%Y"))

    assert decision.reason == REASON_BUSINESS_DATE
    assert not decision.is_quick_fallback
    expected_day = join - timedelta(days=5)
    assert decision.run_at == datetime(
        expected_day.year, expected_day.month, expected_day.day, 9, 15, tzinfo=timezone.utc
    )


def test_target_in_past_falls_back_to_quick():
    """Join date 3 days out: join − 5 days is already behind us."""
    join = (T0 + timedelta(days=3)).date().isoformat()

    decision = _prehire(join)

    assert decision.reason == REASON_PAST_TO_QUICK
    assert decision.run_at == T0 + QUICK


def test_target_equal_to_now_is_not_in_future():
    now = datetime(2026, 3, 10, 9, 15, tzinfo=timezone.utc)   # 14:45 IST
    decision = _prehire("15-03-2026", now=now)

    assert decision.reason == REASON_PAST_TO_QUICK
    assert decision.run_at == now + QUICK


def test_missing_or_unparseable_date_goes_quick():
    for value in (None, "", "soon"):
        decision = _prehire(value)
        assert decision.reason == REASON_NO_DATE_TO_QUICK
        assert decision.run_at == T0 + QUICK


def test_exit_instant_uses_exit_date_without_offset():
    instant = compute_exit_instant("25-03-2026", 14, 20, ZONE)
    assert instant == datetime(2026, 3, 25, 8, 50, tzinfo=timezone.utc)
    assert compute_exit_instant(None, 14, 20, ZONE) is None


def test_is_due():
    assert is_due(None, T0)
    assert is_due(T0, T0)
    assert is_due(T0 - timedelta(days=1), T0)
    assert not is_due(T0 + timedelta(seconds=1), T0)


def test_exit_yesterday_is_due():
    yesterday = (T0 - timedelta(days=1)).date().isoformat()
    assert is_due(compute_exit_instant(yesterday, 14, 20, ZONE), T0)
