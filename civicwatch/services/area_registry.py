# civicwatch/services/area_registry.py
from __future__ import annotations

import logging
import re
import secrets
import string
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from civicwatch.core.errors import ErrorKind, Result
from civicwatch.core.rbac import AccessContext, has_admin, require_super_admin
from civicwatch.models.area_code import AreaAdminAssignment, AreaCode
from civicwatch.models.incident import Incident
from civicwatch.models.user import User
from civicwatch.services.audit import AuditTrail

log = logging.getLogger("civicwatch.areas")

ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
# prefix + 6 random chars stays within the 6-8 character code format
_PREFIX_RE = re.compile(r"^[A-Z0-9]{1,2}$")


def draw_code(prefix: str = "") -> str:
    return prefix + "".join(secrets.choice(ALPHABET) for _ in range(CODE_LENGTH))


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class AreaRegistry:
    """
    Tenant registry: code generation, validation, admin assignment and
    cached statistics. All mutations are super-admin only.
    """

    def __init__(
        self,
        audit: AuditTrail,
        max_attempts: int = 10,
        draw: Callable[[str], str] = draw_code,
    ):
        self.audit = audit
        self.max_attempts = max(1, int(max_attempts))
        self._draw = draw

    # -----------------------------
    # Lookups
    # -----------------------------
    def find(self, db: Session, code: str) -> Optional[AreaCode]:
        return db.query(AreaCode).filter(AreaCode.code == normalize_code(code)).first()

    def find_active(self, db: Session, code: str) -> Optional[AreaCode]:
        norm = normalize_code(code)
        if not norm:
            return None
        return (
            db.query(AreaCode)
            .filter(AreaCode.code == norm, AreaCode.is_active.is_(True))
            .first()
        )

    def validate(self, db: Session, code: str) -> Tuple[bool, Optional[AreaCode]]:
        """Public check used at onboarding; inactive or unknown codes are invalid."""
        area = self.find_active(db, code)
        return area is not None, area

    def list_areas(self, db: Session, ctx: AccessContext) -> Result[List[AreaCode]]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)
        return Result.success(db.query(AreaCode).order_by(AreaCode.created_at.desc(), AreaCode.id.desc()).all())

    def get_area(self, db: Session, ctx: AccessContext, area_id: int) -> Result[AreaCode]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)
        return self._load(db, area_id)

    def _load(self, db: Session, area_id: int) -> Result[AreaCode]:
        area = db.get(AreaCode, area_id)
        if area is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Area code not found")
        return Result.success(area)

    # -----------------------------
    # Scoping
    # -----------------------------
    def scope_codes(self, ctx: AccessContext) -> Optional[FrozenSet[str]]:
        """
        Area codes the caller may administer. None means unrestricted
        (super-admin); members get an empty set.
        """
        if ctx.is_super_admin:
            return None
        if not ctx.is_admin:
            return frozenset()
        codes = {normalize_code(c) for c in ctx.assigned_area_codes}
        if ctx.area_code:
            codes.add(normalize_code(ctx.area_code))
        return frozenset(c for c in codes if c)

    def can_access(self, ctx: AccessContext, code: Optional[str]) -> bool:
        codes = self.scope_codes(ctx)
        if codes is None:
            return True
        return normalize_code(code) in codes

    # -----------------------------
    # Mutations
    # -----------------------------
    def generate(
        self,
        db: Session,
        ctx: AccessContext,
        name: str,
        description: Optional[str] = "",
        prefix: Optional[str] = None,
    ) -> Result[AreaCode]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)

        name = (name or "").strip()
        if len(name) < 2:
            return Result.failure(ErrorKind.VALIDATION, "Area name is required (minimum 2 characters)")
        prefix = normalize_code(prefix)
        if prefix and not _PREFIX_RE.match(prefix):
            return Result.failure(ErrorKind.VALIDATION, "Prefix must be 1-2 letters or digits")

        # The lookup only filters obvious repeats; the unique constraint decides.
        for attempt in range(1, self.max_attempts + 1):
            code = self._draw(prefix)
            if db.query(AreaCode.id).filter(AreaCode.code == code).first() is not None:
                log.debug("area code %s already taken (attempt %s)", code, attempt)
                continue

            area = AreaCode(
                code=code,
                name=name,
                description=description or "",
                created_by=ctx.user_id,
                is_active=True,
            )
            db.add(area)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                log.info("area code %s lost insert race (attempt %s)", code, attempt)
                continue

            db.refresh(area)
            self.audit.record(db, ctx, "AREA_CODE_GENERATED", "area", area.id, {"code": code, "name": name})
            return Result.success(area)

        log.error("could not allocate unique area code after %s attempts", self.max_attempts)
        return Result.failure(ErrorKind.CONFLICT, "Could not allocate a unique area code, please retry")

    def assign_admins(
        self,
        db: Session,
        ctx: AccessContext,
        area_id: int,
        admin_ids: Iterable[int],
    ) -> Result[AreaCode]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)

        ids = list(dict.fromkeys(int(i) for i in admin_ids or []))
        if not ids:
            return Result.failure(ErrorKind.VALIDATION, "Admin IDs array is required")

        loaded = self._load(db, area_id)
        if not loaded.ok:
            return loaded
        area = loaded.value

        admins = db.query(User).filter(User.id.in_(ids)).all()
        if len(admins) != len(ids) or not all(has_admin(u.capability_set) for u in admins):
            return Result.failure(
                ErrorKind.VALIDATION,
                "Some users are not admins",
                details={"admin_ids": ids, "valid_admin_ids": sorted(u.id for u in admins if has_admin(u.capability_set))},
            )

        added = []
        for admin in admins:
            if not area.has_admin(admin.id):
                area.assignments.append(AreaAdminAssignment(admin_id=admin.id))
                added.append(admin.id)
        db.commit()
        db.refresh(area)

        if added:
            self.audit.record(db, ctx, "AREA_ADMINS_ASSIGNED", "area", area.id, {"code": area.code, "admin_ids": added})
        return Result.success(area)

    def remove_admin(self, db: Session, ctx: AccessContext, area_id: int, admin_id: int) -> Result[AreaCode]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)

        loaded = self._load(db, area_id)
        if not loaded.ok:
            return loaded
        area = loaded.value

        row = next((a for a in area.assignments if a.admin_id == admin_id), None)
        if row is not None:
            area.assignments.remove(row)
            db.commit()
            db.refresh(area)
            self.audit.record(db, ctx, "AREA_ADMIN_REMOVED", "area", area.id, {"code": area.code, "admin_id": admin_id})
        return Result.success(area)

    def toggle_active(self, db: Session, ctx: AccessContext, area_id: int) -> Result[AreaCode]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)

        loaded = self._load(db, area_id)
        if not loaded.ok:
            return loaded
        area = loaded.value

        area.is_active = not area.is_active
        db.commit()
        db.refresh(area)

        action = "AREA_CODE_ACTIVATED" if area.is_active else "AREA_CODE_DEACTIVATED"
        self.audit.record(db, ctx, action, "area", area.id, {"code": area.code})
        return Result.success(area)

    def dependents(self, db: Session, code: str) -> Tuple[int, int]:
        users = db.query(User).filter(User.area_code == code).count()
        incidents = db.query(Incident).filter(Incident.area_code == code).count()
        return users, incidents

    def recompute_stats(self, db: Session, code: str) -> Result[AreaCode]:
        """Recount from source rows; safe to run at any cadence."""
        area = self.find(db, code)
        if area is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Area code not found")
        area.total_users, area.total_incidents = self.dependents(db, area.code)
        db.commit()
        db.refresh(area)
        return Result.success(area)

    def recompute_all(self, db: Session) -> int:
        codes = [c for (c,) in db.query(AreaCode.code).all()]
        for code in codes:
            self.recompute_stats(db, code)
        return len(codes)

    def delete(self, db: Session, ctx: AccessContext, area_id: int) -> Result[dict]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)

        loaded = self._load(db, area_id)
        if not loaded.ok:
            return Result.from_error(loaded.error)
        area = loaded.value

        user_count, incident_count = self.dependents(db, area.code)
        if user_count or incident_count:
            return Result.failure(
                ErrorKind.CONFLICT,
                "Cannot delete area code with existing users or incidents. Deactivate instead.",
                details={"user_count": user_count, "incident_count": incident_count},
            )

        snapshot = {"code": area.code, "name": area.name}
        db.delete(area)
        db.commit()

        self.audit.record(db, ctx, "AREA_CODE_DELETED", "area", area_id, snapshot)
        return Result.success({"deleted": True, "id": area_id, "code": snapshot["code"]})
