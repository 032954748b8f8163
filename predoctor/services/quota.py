"""Monthly AI-check quota per hospital.

The counter lives on the hospital row together with a rolling billing window
(``billing_period_start`` / ``billing_period_end``). Window rollover and the
increment are both single conditional UPDATE statements, so concurrent
requests cannot push the counter past ``max_ai_checks_per_month``.

A cap of 0 (or less) means unlimited.
"""
from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import NamedTuple

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from predoctor.models import Hospital

logger = logging.getLogger(__name__)

LIMIT_REACHED = "LIMIT_REACHED"


class QuotaCheck(NamedTuple):
    """Result of a pre-flight quota check."""
    ok: bool
    reason: str | None
    used: int
    limit: int
    period_end: datetime | None


class HospitalNotFound(LookupError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def add_calendar_month(dt: datetime) -> datetime:
    """Same day next month, clamped to the last day (Jan 31 -> Feb 28/29)."""
    year = dt.year + dt.month // 12
    month = dt.month % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def ensure_billing_window(db: Session, hospital_id: int, now: datetime | None = None) -> bool:
    """Open a new billing window if none is set or the current one expired.

    Returns True when a new window was opened (and the counter reset). Does
    not commit.
    """
    now = now or _now()
    stmt = (
        update(Hospital)
        .where(
            Hospital.id == hospital_id,
            or_(
                Hospital.billing_period_start.is_(None),
                Hospital.billing_period_end.is_(None),
                Hospital.billing_period_end < now,
            ),
        )
        .values(
            billing_period_start=now,
            billing_period_end=add_calendar_month(now),
            ai_checks_used_this_month=0,
        )
        .execution_options(synchronize_session=False)
    )
    opened = db.execute(stmt).rowcount > 0
    if opened:
        logger.info("Opened new billing window", extra={"hospital_id": hospital_id})
    return opened


def _read_usage(db: Session, hospital_id: int) -> tuple[int, int, datetime | None]:
    row = db.execute(
        select(
            Hospital.ai_checks_used_this_month,
            Hospital.max_ai_checks_per_month,
            Hospital.billing_period_end,
        ).where(Hospital.id == hospital_id)
    ).first()
    if row is None:
        raise HospitalNotFound(hospital_id)
    return int(row[0] or 0), int(row[1] or 0), _as_utc(row[2])


def check_and_reserve(db: Session, hospital_id: int, now: datetime | None = None) -> QuotaCheck:
    """Roll the window over if needed, then evaluate the cap.

    Nothing is charged here; see :func:`commit`.
    """
    ensure_billing_window(db, hospital_id, now=now)
    db.commit()
    used, limit, period_end = _read_usage(db, hospital_id)
    if limit > 0 and used >= limit:
        return QuotaCheck(False, LIMIT_REACHED, used, limit, period_end)
    return QuotaCheck(True, None, used, limit, period_end)


def commit(db: Session, hospital_id: int, now: datetime | None = None) -> bool:
    """Charge one AI check if the cap still allows it.

    Runs inside the caller's transaction and does not commit. Returns False
    when the conditional increment matched no row (cap reached meanwhile);
    the caller is expected to roll back.
    """
    now = now or _now()
    ensure_billing_window(db, hospital_id, now=now)
    stmt = (
        update(Hospital)
        .where(
            Hospital.id == hospital_id,
            or_(
                Hospital.max_ai_checks_per_month <= 0,
                Hospital.ai_checks_used_this_month < Hospital.max_ai_checks_per_month,
            ),
            Hospital.billing_period_end >= now,
        )
        .values(ai_checks_used_this_month=Hospital.ai_checks_used_this_month + 1)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


__all__ = [
    "LIMIT_REACHED",
    "QuotaCheck",
    "HospitalNotFound",
    "add_calendar_month",
    "ensure_billing_window",
    "check_and_reserve",
    "commit",
]
