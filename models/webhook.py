"""
Payment webhook audit log: one row per delivery attempt
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, JSON, DateTime
from sqlalchemy.sql import func
from core.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class WebhookDebug(Base):
    __tablename__ = "webhook_debug"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(50), nullable=False, default="cakto")
    payload = Column(JSON, nullable=False, default=dict)
    processed_email = Column(String(255), nullable=True, index=True)
    event_status = Column(String(100), nullable=True)
    action_taken = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
