from __future__ import annotations

from datetime import datetime, timedelta, timezone

from predoctor.db import SessionLocal
from predoctor.services import quota
from tests.utils.factories import get_hospital, make_hospital

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _as_utc(dt):
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def test_add_calendar_month_clamps_day():
    assert quota.add_calendar_month(datetime(2026, 1, 31)) == datetime(2026, 2, 28)
    assert quota.add_calendar_month(datetime(2024, 1, 31)) == datetime(2024, 2, 29)
    assert quota.add_calendar_month(datetime(2026, 12, 15)) == datetime(2027, 1, 15)
    assert quota.add_calendar_month(datetime(2026, 3, 10)) == datetime(2026, 4, 10)


def test_missing_window_is_opened():
    hospital = make_hospital(ai_checks_used_this_month=7)
    with SessionLocal() as db:
        assert quota.ensure_billing_window(db, hospital.id, now=NOW) is True
        db.commit()
    h = get_hospital(hospital.id)
    assert h.ai_checks_used_this_month == 0
    assert _as_utc(h.billing_period_start) == NOW
    assert _as_utc(h.billing_period_end) == datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)


def test_current_window_left_alone():
    hospital = make_hospital(
        ai_checks_used_this_month=4,
        billing_period_start=NOW - timedelta(days=3),
        billing_period_end=NOW + timedelta(days=20),
    )
    with SessionLocal() as db:
        assert quota.ensure_billing_window(db, hospital.id, now=NOW) is False
        db.commit()
    assert get_hospital(hospital.id).ai_checks_used_this_month == 4


def test_expired_window_rolls_over_and_resets():
    hospital = make_hospital(
        max_ai_checks_per_month=5,
        ai_checks_used_this_month=5,
        billing_period_start=NOW - timedelta(days=40),
        billing_period_end=NOW - timedelta(days=10),
    )
    with SessionLocal() as db:
        check = quota.check_and_reserve(db, hospital.id, now=NOW)
    assert check.ok
    assert check.used == 0
    assert _as_utc(check.period_end) == quota.add_calendar_month(NOW)


def test_cap_reached_rejected():
    hospital = make_hospital(
        max_ai_checks_per_month=2,
        ai_checks_used_this_month=2,
        billing_period_start=NOW - timedelta(days=1),
        billing_period_end=NOW + timedelta(days=29),
    )
    with SessionLocal() as db:
        check = quota.check_and_reserve(db, hospital.id, now=NOW)
    assert not check.ok
    assert check.reason == quota.LIMIT_REACHED
    assert (check.used, check.limit) == (2, 2)


def test_zero_cap_is_unlimited():
    hospital = make_hospital(
        max_ai_checks_per_month=0,
        ai_checks_used_this_month=10_000,
        billing_period_start=NOW - timedelta(days=1),
        billing_period_end=NOW + timedelta(days=29),
    )
    with SessionLocal() as db:
        assert quota.check_and_reserve(db, hospital.id, now=NOW).ok
        assert quota.commit(db, hospital.id, now=NOW)
        db.commit()
    assert get_hospital(hospital.id).ai_checks_used_this_month == 10_001


def test_commit_increments_once():
    hospital = make_hospital(max_ai_checks_per_month=3)
    with SessionLocal() as db:
        assert quota.commit(db, hospital.id, now=NOW)
        db.commit()
    assert get_hospital(hospital.id).ai_checks_used_this_month == 1


def test_commit_refuses_past_cap():
    """Two requests pass the pre-check; only one may be charged."""
    hospital = make_hospital(max_ai_checks_per_month=1)
    with SessionLocal() as first, SessionLocal() as second:
        assert quota.check_and_reserve(first, hospital.id, now=NOW).ok
        assert quota.check_and_reserve(second, hospital.id, now=NOW).ok
        assert quota.commit(first, hospital.id, now=NOW)
        first.commit()
        assert not quota.commit(second, hospital.id, now=NOW)
        second.rollback()
    assert get_hospital(hospital.id).ai_checks_used_this_month == 1


def test_commit_after_expiry_resets_first():
    hospital = make_hospital(
        max_ai_checks_per_month=1,
        ai_checks_used_this_month=1,
        billing_period_start=NOW - timedelta(days=31),
        billing_period_end=NOW - timedelta(seconds=1),
    )
    with SessionLocal() as db:
        assert quota.commit(db, hospital.id, now=NOW)
        db.commit()
    assert get_hospital(hospital.id).ai_checks_used_this_month == 1
