"""
Generated-ad history: one row per generation, the UI shows the latest 5
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, JSON, DateTime
from sqlalchemy.sql import func
from core.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class PropertyHistory(Base):
    __tablename__ = "property_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(128), nullable=False, index=True)
    property_data = Column(JSON, nullable=False, default=dict)
    ads_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True)

    def to_item(self):
        created = self.created_at
        if created is not None and created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return {
            "id": self.id,
            "timestamp": int(created.timestamp() * 1000) if created else None,
            "property": self.property_data or {},
            "ads": self.ads_data or {},
        }
