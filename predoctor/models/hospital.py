"""Hospital (tenant) record.

Billing fields are owned by :mod:`predoctor.services.quota`; plan assignment
goes through :mod:`predoctor.services.plans`.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String

from .base import Base

HOSPITAL_STATUSES = ("active", "suspended", "banned")


class Hospital(Base):
    __tablename__ = "hospitals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(63), nullable=False, unique=True, index=True)
    status = Column(String(16), nullable=False, default="active", server_default="active")
    # assistant configuration: name, tone, language, intro template,
    # instructions and enabled_features toggles
    settings = Column(JSON, nullable=False, default=dict)

    subscription_plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True)
    plan_name = Column(String(64), nullable=False, default="free", server_default="free")
    max_ai_checks_per_month = Column(Integer, nullable=False, default=100, server_default="100")
    ai_checks_used_this_month = Column(Integer, nullable=False, default=0, server_default="0")
    billing_period_start = Column(DateTime(timezone=True), nullable=True)
    billing_period_end = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def is_active(self) -> bool:
        return (self.status or "active") == "active"


__all__ = ["Hospital", "HOSPITAL_STATUSES"]
