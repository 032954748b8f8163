from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String

from .base import Base


class AiUsageLog(Base):
    """Append-only audit row per completed assessment."""

    __tablename__ = "ai_usage_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String(32), nullable=False, default="SYMPTOM_ANALYSIS")
    provider = Column(String(16), nullable=False)
    model = Column(String(128))
    tokens_used = Column(Integer, nullable=False, default=0)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)


__all__ = ["AiUsageLog"]
