# civicwatch/models/report.py
from enum import Enum

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from civicwatch.db.base import Base, utcnow


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


class AdminAction(str, Enum):
    NONE = "none"
    WARNED = "warned"
    SUSPENDED = "suspended"


class Report(Base):
    """
    Abuse complaint filed inside a message thread.

    NOTE: user/incident/message references are plain integers on purpose; the
    report (and its chat snapshot) must outlive deleted threads and users.
    """

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True)
    reporter_id = Column(Integer, nullable=False, index=True)
    reported_user_id = Column(Integer, nullable=False, index=True)
    incident_id = Column(Integer, nullable=False, index=True)
    message_id = Column(Integer, nullable=True)

    reason = Column(Text, nullable=False)
    screenshot_url = Column(String(500), nullable=True)
    # [{message_id, sender_id, content, created_at}, ...] frozen at filing time
    chat_snapshot = Column(JSON, nullable=False, default=list)

    status = Column(String(20), nullable=False, default=ReportStatus.PENDING.value, index=True)
    admin_action = Column(String(20), nullable=False, default=AdminAction.NONE.value)
    review_note = Column(Text, nullable=True)
    reviewed_by = Column(Integer, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
