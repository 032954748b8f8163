from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text

from .base import Base


class Doctor(Base):
    """Hospital roster entry. Read-only for the assessment engine."""

    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    specialization = Column(String(255), nullable=False)
    qualification = Column(String(255), nullable=False, default="", server_default="")
    expertise_tags = Column(JSON, nullable=False, default=list)
    timings = Column(String(255))
    description = Column(Text)
    status = Column(String(16), nullable=False, default="active", server_default="active")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)


__all__ = ["Doctor"]
