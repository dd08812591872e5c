"""
Agent profile model
Mirrors the auth users; one row per auth uid
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Boolean
from sqlalchemy.sql import func
from core.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    # Primary key - auth provider UID
    id = Column(String(128), primary_key=True, index=True)

    email = Column(String(255), index=True, nullable=False)
    name = Column(String(255), nullable=True)

    # Professional details used in the ad contact block
    creci = Column(String(64), nullable=True)
    telefone = Column(String(64), nullable=True)
    cidade = Column(String(255), nullable=True)
    estado = Column(String(64), nullable=True)
    photo_url = Column(Text, nullable=True)

    role = Column(String(32), nullable=False, default="user")  # user, admin
    is_active = Column(Boolean, nullable=False, default=True)

    # Subscription (driven by the payment webhook)
    subscription_status = Column(String(32), nullable=False, default="inactive")  # active, inactive
    subscription_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    def to_dict(self):
        """Convert to dict for API responses"""
        role = (self.role or "user").strip().lower()
        return {
            "id": self.id,
            "email": self.email or "",
            "name": self.name or "",
            "creci": self.creci or "",
            "telefone": self.telefone or "",
            "cidade": self.cidade or "",
            "estado": self.estado or "",
            "photoUrl": self.photo_url or None,
            "role": role,
            "is_admin": role in ("admin", "administrator"),
            "is_active": self.is_active is not False,
            "subscription_status": self.subscription_status or "inactive",
            "subscription_expires_at": self.subscription_expires_at.isoformat() if self.subscription_expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
