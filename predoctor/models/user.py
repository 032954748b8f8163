from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from predoctor.models.base import Base

ROLES = ("SUPER_ADMIN", "HOSPITAL_ADMIN", "PATIENT")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=True, index=True)
    role = Column(String(32), nullable=False, default="PATIENT")
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    age = Column(Integer)
    gender = Column(String(32))
    status = Column(String(16), nullable=False, default="active", server_default="active")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


__all__ = ["User", "ROLES"]
