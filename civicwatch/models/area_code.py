# civicwatch/models/area_code.py
from typing import List

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from civicwatch.db.base import Base, utcnow


class AreaCode(Base):
    """
    Tenant partition. `code` is unique at the store level; generation relies on
    that constraint rather than on the pre-insert lookup.
    """

    __tablename__ = "area_codes"

    id = Column(Integer, primary_key=True)
    code = Column(String(16), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Cached statistics (recomputed, never incremented)
    total_users = Column(Integer, nullable=False, default=0)
    total_incidents = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    assignments = relationship(
        "AreaAdminAssignment",
        back_populates="area",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def admin_ids(self) -> List[int]:
        return sorted(a.admin_id for a in self.assignments)

    def has_admin(self, admin_id: int) -> bool:
        return any(a.admin_id == admin_id for a in self.assignments)

    def __repr__(self) -> str:
        return f"<AreaCode id={self.id} code={self.code!r} active={self.is_active}>"


class AreaAdminAssignment(Base):
    __tablename__ = "area_admin_assignments"

    id = Column(Integer, primary_key=True, index=True)
    area_id = Column(Integer, ForeignKey("area_codes.id", ondelete="CASCADE"), nullable=False, index=True)
    admin_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    area = relationship("AreaCode", back_populates="assignments")
    admin = relationship("User", back_populates="area_assignments")

    # one row per (area, admin) pair; both sides of the relation read from it
    __table_args__ = (UniqueConstraint("area_id", "admin_id", name="uq_area_admin"),)
