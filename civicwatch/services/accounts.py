# civicwatch/services/accounts.py
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from civicwatch.core.auth import AccessGate
from civicwatch.core.errors import ErrorKind, Result
from civicwatch.core.rbac import (
    AccessContext,
    Capability,
    ensure_not_self,
    require_admin_only,
    require_super_admin,
)
from civicwatch.core.security import get_password_hash, verify_password
from civicwatch.models.incident import Incident, IncidentAcknowledgement
from civicwatch.models.message import IncidentMessage
from civicwatch.models.notification import Notification
from civicwatch.models.user import User
from civicwatch.schemas.user import ProfileUpdate, SignupIn
from civicwatch.services.area_registry import AreaRegistry, normalize_code
from civicwatch.services.audit import AuditTrail

log = logging.getLogger("civicwatch.accounts")


class AccountService:
    """Signup/login plus the admin-side user management operations."""

    def __init__(self, gate: AccessGate, areas: AreaRegistry, audit: AuditTrail, superadmin_email: str = ""):
        self.gate = gate
        self.areas = areas
        self.audit = audit
        self.superadmin_email = (superadmin_email or "").strip().lower()

    # -----------------------------
    # Credentials
    # -----------------------------
    def signup(self, db: Session, payload: SignupIn) -> Result[Tuple[User, str]]:
        email = str(payload.email).strip().lower()
        if db.query(User.id).filter(User.email == email).first() is not None:
            return Result.failure(ErrorKind.CONFLICT, "Email already registered")

        code = None
        if payload.area_code:
            valid, area = self.areas.validate(db, payload.area_code)
            if not valid:
                return Result.failure(ErrorKind.VALIDATION, "Invalid or inactive area code")
            code = area.code

        user = User(
            email=email,
            name=payload.name,
            phone=payload.phone,
            hashed_password=get_password_hash(payload.password),
            area_code=code,
        )
        if self.superadmin_email and email == self.superadmin_email:
            user.set_capabilities({Capability.ADMIN, Capability.SUPER_ADMIN})
        else:
            user.set_capabilities({Capability.MEMBER})

        db.add(user)
        db.commit()
        db.refresh(user)

        log.info("user %s signed up (area=%s)", user.id, code)
        return Result.success((user, self.gate.issue_token(user)))

    def authenticate(self, db: Session, email: str, password: str) -> Result[Tuple[User, str]]:
        user = db.query(User).filter(User.email == (email or "").strip().lower()).first()
        # same message for unknown email and wrong password
        if user is None or not verify_password(password, user.hashed_password):
            return Result.failure(ErrorKind.UNAUTHENTICATED, "Incorrect email or password")
        return Result.success((user, self.gate.issue_token(user)))

    def update_profile(self, db: Session, ctx: AccessContext, payload: ProfileUpdate) -> Result[User]:
        user = db.get(User, ctx.user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")
        data = payload.model_dump(exclude_unset=True)
        for field in ("name", "phone"):
            if field in data and data[field] is not None:
                setattr(user, field, data[field])
        db.commit()
        db.refresh(user)
        return Result.success(user)

    # -----------------------------
    # Administration
    # -----------------------------
    def list_users(
        self,
        db: Session,
        ctx: AccessContext,
        *,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Result[List[User]]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)

        q = db.query(User)
        codes = self.areas.scope_codes(ctx)
        if codes is not None:
            q = q.filter(User.area_code.in_(codes)) if codes else q.filter(User.id == ctx.user_id)
        if search:
            like = f"%{search.strip()}%"
            q = q.filter(or_(User.email.ilike(like), User.name.ilike(like)))
        return Result.success(q.order_by(User.id.asc()).offset(skip).limit(limit).all())

    def get_user(self, db: Session, ctx: AccessContext, user_id: int) -> Result[User]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)
        user = db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")
        return Result.success(user)

    def promote(self, db: Session, ctx: AccessContext, user_id: int) -> Result[User]:
        loaded = self.get_user(db, ctx, user_id)
        if not loaded.ok:
            return loaded
        user = loaded.value

        if Capability.ADMIN not in user.capability_set:
            user.grant(Capability.ADMIN)
            db.commit()
            db.refresh(user)
            self.audit.record(db, ctx, "USER_PROMOTED", "user", user.id, {"email": user.email, "roles": user.roles})
        return Result.success(user)

    def demote(self, db: Session, ctx: AccessContext, user_id: int) -> Result[User]:
        denied = require_super_admin(ctx)
        if denied:
            return Result.from_error(denied)
        user = db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")
        if Capability.SUPER_ADMIN in user.capability_set:
            return Result.failure(ErrorKind.VALIDATION, "Super-admins cannot be demoted")

        if Capability.ADMIN in user.capability_set or user.area_assignments:
            user.revoke(Capability.ADMIN)
            user.area_assignments.clear()
            db.commit()
            db.refresh(user)
            self.audit.record(db, ctx, "USER_DEMOTED", "user", user.id, {"email": user.email, "roles": user.roles})
        return Result.success(user)

    def delete_user(self, db: Session, ctx: AccessContext, user_id: int) -> Result[dict]:
        denied = require_super_admin(ctx) or ensure_not_self(ctx, user_id)
        if denied:
            return Result.from_error(denied)

        user = db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "User not found")

        snapshot = {"email": user.email, "name": user.name, "roles": user.roles}

        messages = (
            db.query(IncidentMessage)
            .filter(or_(IncidentMessage.sender_id == user_id, IncidentMessage.receiver_id == user_id))
            .all()
        )
        incidents = db.query(Incident).filter(Incident.owner_id == user_id).all()
        incident_ids = [i.id for i in incidents]
        if incident_ids:
            messages += (
                db.query(IncidentMessage)
                .filter(IncidentMessage.incident_id.in_(incident_ids))
                .all()
            )
        for m in {m.id: m for m in messages}.values():
            db.delete(m)
        for incident in incidents:
            db.delete(incident)
        db.flush()
        db.query(IncidentAcknowledgement).filter(IncidentAcknowledgement.user_id == user_id).delete(
            synchronize_session=False
        )
        db.query(Notification).filter(Notification.user_id == user_id).delete(synchronize_session=False)
        db.delete(user)
        db.commit()

        snapshot["incidents_removed"] = len(incident_ids)
        self.audit.record(db, ctx, "USER_DELETED", "user", user_id, snapshot)
        return Result.success({"deleted": True, "id": user_id})
