# civicwatch/models/audit_log.py
from sqlalchemy import Column, DateTime, Integer, String, Text

from civicwatch.db.base import Base, utcnow


class AuditLogEntry(Base):
    """Append-only record of an administrative (or automated) action."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    actor_id = Column(Integer, nullable=True, index=True)  # NULL = system
    actor_name = Column(String(255), nullable=False, default="system")
    action = Column(String(100), nullable=False, index=True)
    target_type = Column(String(20), nullable=False, index=True)  # incident|user|report|area|system
    target_id = Column(Integer, nullable=True, index=True)
    details = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
