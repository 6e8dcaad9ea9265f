# civicwatch/models/incident.py
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship, validates

from civicwatch.db.base import Base, utcnow


class IncidentStatus(str, Enum):
    PENDING = "pending"
    UNDER_PROCESS = "under process"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROBLEM_SOLVED = "problem solved"


class IncidentType(str, Enum):
    THEFT = "theft"
    VANDALISM = "vandalism"
    SUSPICIOUS = "suspicious"
    ASSAULT = "assault"
    FIRE = "fire"
    MEDICAL = "medical"
    HAZARD = "hazard"
    TRAFFIC = "traffic"
    INFRASTRUCTURE = "infrastructure"
    NUISANCE = "nuisance"
    MISSING = "missing"
    HARASSMENT = "harassment"
    OTHER = "other"


STATUS_VALUES = tuple(s.value for s in IncidentStatus)


def parse_status(value) -> Optional[IncidentStatus]:
    if isinstance(value, IncidentStatus):
        return value
    try:
        return IncidentStatus(str(value).strip().lower())
    except ValueError:
        return None


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)

    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Content
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, index=True)
    location = Column(String(255), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    image_url = Column(String(500), nullable=True)

    # Workflow
    status = Column(String(20), nullable=False, default=IncidentStatus.PENDING.value, index=True)
    is_important = Column(Boolean, nullable=False, default=False)
    allow_messages = Column(Boolean, nullable=False, default=True)

    # Scoping
    area_code = Column(String(16), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    acknowledgements = relationship(
        "IncidentAcknowledgement",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in STATUS_VALUES)),
            name="ck_incidents_status",
        ),
    )

    @validates("status")
    def _check_status(self, key, value):
        status = parse_status(value)
        if status is None:
            raise ValueError(f"invalid incident status: {value!r}")
        return status.value

    @property
    def acknowledged_by(self) -> List[int]:
        return sorted(a.user_id for a in self.acknowledgements)

    @property
    def accepts_messages(self) -> bool:
        return bool(self.allow_messages) and self.status != IncidentStatus.PROBLEM_SOLVED.value

    def __repr__(self) -> str:
        return (
            f"<Incident id={self.id} owner={self.owner_id} area={self.area_code!r} "
            f"status={self.status!r} important={self.is_important}>"
        )


class IncidentAcknowledgement(Base):
    __tablename__ = "incident_acknowledgements"

    incident_id = Column(Integer, ForeignKey("incidents.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


Index("ix_incidents_area_status", Incident.area_code, Incident.status)
