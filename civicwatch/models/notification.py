# civicwatch/models/notification.py
from datetime import timedelta

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from civicwatch.db.base import Base, utcnow

# rows older than this are invisible and purged by the scheduler
NOTIFICATION_TTL = timedelta(hours=48)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    # NULL user_id = broadcast to everyone
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    # announcement | incident_update | system_alert | moderation
    type = Column(String(30), nullable=False, default="system_alert")
    is_read = Column(Boolean, nullable=False, default=False)
    link = Column(String(500), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
