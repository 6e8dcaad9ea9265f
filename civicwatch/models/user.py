# civicwatch/models/user.py
from datetime import datetime
from typing import FrozenSet, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import relationship, validates

from civicwatch.core.rbac import Capability, parse_capabilities
from civicwatch.db.base import Base, utcnow


def _default_capabilities() -> List[str]:
    return [Capability.MEMBER.value]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)

    # Identity
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False, default="")
    phone = Column(String(50), nullable=True)
    hashed_password = Column(String, nullable=False)

    # Capabilities / tenancy
    capabilities = Column(JSON, nullable=False, default=_default_capabilities)
    area_code = Column(String(16), nullable=True, index=True)

    # Moderation state
    is_suspended = Column(Boolean, nullable=False, default=False)
    suspended_until = Column(DateTime, nullable=True, index=True)
    warnings = Column(JSON, nullable=False, default=list)

    reward_points = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    area_assignments = relationship(
        "AreaAdminAssignment",
        back_populates="admin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @validates("email")
    def _lower_email(self, key, value):
        return (value or "").strip().lower()

    @property
    def capability_set(self) -> FrozenSet[Capability]:
        return parse_capabilities(self.capabilities)

    def set_capabilities(self, caps) -> None:
        # always keep MEMBER; store sorted for stable diffs
        merged = set(caps) | {Capability.MEMBER}
        self.capabilities = sorted(c.value for c in merged)

    def grant(self, cap: Capability) -> None:
        self.set_capabilities(self.capability_set | {cap})

    def revoke(self, cap: Capability) -> None:
        self.set_capabilities(self.capability_set - {cap})

    @property
    def roles(self) -> List[str]:
        return sorted(c.value for c in self.capability_set)

    @property
    def assigned_area_codes(self) -> List[str]:
        return sorted(a.area.code for a in self.area_assignments if a.area is not None)

    def suspension_active(self, now: Optional[datetime] = None) -> bool:
        if not self.is_suspended:
            return False
        if self.suspended_until is None:
            return True
        return self.suspended_until > (now or utcnow())

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} caps={self.capabilities!r}>"
