# civicwatch/core/rbac.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple

from civicwatch.core.errors import DomainError, forbidden

# -----------------------------
# Capabilities
# -----------------------------


class Capability(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# legacy literals seen in older tokens/imports
_ALIASES = {
    "user": Capability.MEMBER,
    "superadmin": Capability.SUPER_ADMIN,
    "super-admin": Capability.SUPER_ADMIN,
}


def parse_capabilities(values: Optional[Iterable[str]]) -> FrozenSet[Capability]:
    """Normalize a stored list of role strings into a capability set; unknown values are dropped."""
    caps = set()
    for raw in values or ():
        v = (str(raw) or "").strip().lower()
        if v in _ALIASES:
            caps.add(_ALIASES[v])
            continue
        try:
            caps.add(Capability(v))
        except ValueError:
            continue
    return frozenset(caps)


def has_admin(caps: FrozenSet[Capability]) -> bool:
    return Capability.ADMIN in caps or Capability.SUPER_ADMIN in caps


def has_super_admin(caps: FrozenSet[Capability]) -> bool:
    return Capability.SUPER_ADMIN in caps


# -----------------------------
# Request-scoped context
# -----------------------------


@dataclass(frozen=True)
class AccessContext:
    user_id: int
    email: str
    name: str = ""
    capabilities: FrozenSet[Capability] = frozenset({Capability.MEMBER})
    area_code: Optional[str] = None
    assigned_area_codes: Tuple[str, ...] = ()
    is_suspended: bool = False

    @property
    def is_admin(self) -> bool:
        return has_admin(self.capabilities)

    @property
    def is_super_admin(self) -> bool:
        return has_super_admin(self.capabilities)

    @property
    def display_name(self) -> str:
        return self.name or self.email


# -----------------------------
# Predicates (None = allowed)
# -----------------------------


def require_admin_only(ctx: AccessContext) -> Optional[DomainError]:
    if not ctx.is_admin:
        return forbidden("Admin access required")
    return None


def require_super_admin(ctx: AccessContext) -> Optional[DomainError]:
    if not ctx.is_super_admin:
        return forbidden("Only superadmin can perform this action")
    return None


def ensure_not_self(ctx: AccessContext, target_user_id: int) -> Optional[DomainError]:
    """Self-protect: nobody deletes their own principal, super-admin included."""
    if int(ctx.user_id) == int(target_user_id):
        return forbidden("You cannot delete your own account")
    return None


def require_active(ctx: AccessContext) -> Optional[DomainError]:
    if ctx.is_suspended:
        return forbidden("Your account is suspended")
    return None
