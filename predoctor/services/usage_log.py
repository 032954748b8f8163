"""Append-only AI usage audit trail.

One row per completed assessment. Writing it must never undo or fail an
assessment that was already persisted, so callers use
:func:`record_usage_safely` after the report transaction committed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from predoctor import db as db_module
from predoctor.metrics import usage_log_failures_total
from predoctor.models import AiUsageLog

logger = logging.getLogger(__name__)

SYMPTOM_ANALYSIS = "SYMPTOM_ANALYSIS"


@dataclass(frozen=True)
class UsageEntry:
    hospital_id: int
    user_id: int
    patient_id: int
    provider: str
    model: str | None
    tokens_used: int = 0
    type: str = SYMPTOM_ANALYSIS
    meta: dict[str, Any] = field(default_factory=dict)


def record_usage(db: Session, entry: UsageEntry) -> AiUsageLog:
    row = AiUsageLog(
        hospital_id=entry.hospital_id,
        user_id=entry.user_id,
        patient_id=entry.patient_id,
        type=entry.type,
        provider=entry.provider,
        model=entry.model,
        tokens_used=max(int(entry.tokens_used or 0), 0),
        meta=dict(entry.meta),
    )
    db.add(row)
    db.commit()
    return row


def record_usage_safely(entry: UsageEntry) -> AiUsageLog | None:
    """Write the usage row in its own session; log and count failures."""
    try:
        with db_module.SessionLocal() as db:
            return record_usage(db, entry)
    except SQLAlchemyError:
        usage_log_failures_total.inc()
        logger.exception(
            "Failed to record AI usage",
            extra={"hospital_id": entry.hospital_id, "user_id": entry.user_id},
        )
        return None


__all__ = ["SYMPTOM_ANALYSIS", "UsageEntry", "record_usage", "record_usage_safely"]
