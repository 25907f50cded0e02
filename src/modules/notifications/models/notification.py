from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship

from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class NotificationType(PyEnum):
    LOAN_UPDATE = "loan_update"
    AGREEMENT_GENERATED = "agreement_generated"
    AGREEMENT_SIGNED = "agreement_signed"
    SYSTEM_ALERT = "system_alert"


class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True)
    type = Column(Enum(NotificationType), nullable=False, default=NotificationType.LOAN_UPDATE)
    title = Column(String(255), nullable=False)
    message = Column(String(1024), nullable=False)
    loan_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    user = relationship("User", back_populates="notifications")
    read = Column(Boolean, default=False)
