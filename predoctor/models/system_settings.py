from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from .base import Base

GLOBAL_SETTINGS_KEY = "global"


class SystemSettings(Base):
    """Platform-wide AI provider selection, editable by the operator."""

    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(32), nullable=False, unique=True)
    ai_provider = Column(String(16))
    openai_model = Column(String(128))
    groq_model = Column(String(128))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
