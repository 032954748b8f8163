"""Persisted AI pre-assessment report.

``recommended_doctor_id`` is a live reference without a foreign key: it may
dangle once the doctor is removed. The ``recommended_doctor_*`` columns are a
snapshot taken at creation time and are never refreshed.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text

from .base import Base

RISK_LEVELS = ("low", "medium", "high")
TEST_PRIORITIES = ("low", "medium", "high", "urgent")


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    symptom_input = Column(Text, nullable=False)
    qa_flow = Column(JSON, nullable=False, default=list)
    summary = Column(Text, nullable=False)
    possible_conditions = Column(JSON, nullable=False, default=list)
    risk_level = Column(String(8), nullable=False, default="low")
    recommended_tests = Column(JSON, nullable=False, default=list)
    diet_plan = Column(JSON, nullable=False, default=list)
    what_to_avoid = Column(JSON, nullable=False, default=list)
    home_care = Column(JSON, nullable=False, default=list)

    recommended_doctor_id = Column(Integer, nullable=True)
    recommended_doctor_name = Column(String(255))
    recommended_doctor_qualification = Column(String(255))
    recommended_doctor_specialization = Column(String(255))

    source = Column(String(8), nullable=False, default="AI")
    model_info = Column(Text)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)


__all__ = ["Report", "RISK_LEVELS", "TEST_PRIORITIES"]
