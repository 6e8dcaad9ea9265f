# civicwatch/models/message.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from civicwatch.db.base import Base, utcnow


class IncidentMessage(Base):
    """One direct message between two participants about an incident."""

    __tablename__ = "incident_messages"

    id = Column(Integer, primary_key=True)
    incident_id = Column(Integer, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    replies = relationship(
        "IncidentMessageReply",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="IncidentMessageReply.id",
    )

    def involves(self, user_id: int) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def counterpart_of(self, user_id: int) -> int:
        return self.receiver_id if self.sender_id == user_id else self.sender_id


class IncidentMessageReply(Base):
    __tablename__ = "incident_message_replies"

    id = Column(Integer, primary_key=True)
    message_id = Column(Integer, ForeignKey("incident_messages.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    message = relationship("IncidentMessage", back_populates="replies")
