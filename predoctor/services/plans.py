"""Subscription plan assignment for hospitals."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from predoctor.models import Hospital, SubscriptionPlan
from predoctor.services import quota

logger = logging.getLogger(__name__)


class PlanError(ValueError):
    pass


class PlanNotFound(PlanError, LookupError):
    pass


def assign_plan(
    db: Session,
    hospital_id: int,
    plan_id: int,
    override: int | None = None,
    now: datetime | None = None,
) -> Hospital:
    """Attach ``plan_id`` to the hospital and set its monthly cap.

    ``override`` replaces the plan's cap only when it is a positive int. An
    expired or missing billing window is reopened, resetting usage.
    """
    hospital = db.get(Hospital, hospital_id)
    if hospital is None:
        raise PlanNotFound(f"Hospital {hospital_id} not found")
    plan = db.get(SubscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise PlanNotFound(f"Plan {plan_id} not found or inactive")

    cap = plan.max_ai_checks_per_month
    if isinstance(override, int) and not isinstance(override, bool) and override > 0:
        cap = override

    hospital.subscription_plan_id = plan.id
    hospital.plan_name = plan.name
    hospital.max_ai_checks_per_month = cap
    db.flush()
    quota.ensure_billing_window(db, hospital_id, now=now)
    db.commit()
    db.refresh(hospital)
    logger.info(
        "Assigned plan %s (cap=%s)", plan.name, cap, extra={"hospital_id": hospital_id}
    )
    return hospital


__all__ = ["PlanError", "PlanNotFound", "assign_plan"]
