# civicwatch/services/moderation.py
from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy import and_, false, or_
from sqlalchemy.orm import Query, Session

from civicwatch.core.errors import DomainError, ErrorKind, Result, forbidden
from civicwatch.core.rbac import (
    AccessContext,
    require_active,
    require_admin_only,
)
from civicwatch.db.base import utcnow
from civicwatch.models.incident import (
    Incident,
    IncidentAcknowledgement,
    IncidentStatus,
    STATUS_VALUES,
    parse_status,
)
from civicwatch.models.message import IncidentMessage
from civicwatch.models.user import User
from civicwatch.schemas.incident import IncidentCreate, IncidentOut
from civicwatch.services.area_registry import AreaRegistry, normalize_code
from civicwatch.services.audit import AuditTrail
from civicwatch.services.notifications import NotificationEmitter
from civicwatch.services.spam import is_spam

log = logging.getLogger("civicwatch.moderation")

ADMIN_TARGETS: FrozenSet[IncidentStatus] = frozenset(IncidentStatus)
# reporters may archive/unarchive their own report but never approve it
OWNER_TARGETS: FrozenSet[IncidentStatus] = frozenset(
    {IncidentStatus.PROBLEM_SOLVED, IncidentStatus.REJECTED, IncidentStatus.PENDING}
)

APPROVED = IncidentStatus.APPROVED.value


def incident_payload(incident: Incident) -> Dict[str, Any]:
    return IncidentOut.model_validate(incident).model_dump(mode="json")


class ModerationEngine:
    """Incident lifecycle: creation with spam check, actor-gated transitions, side effects."""

    def __init__(self, areas: AreaRegistry, audit: AuditTrail, notifier: NotificationEmitter):
        self.areas = areas
        self.audit = audit
        self.notifier = notifier

    # -----------------------------
    # Permission helpers
    # -----------------------------
    def admin_in_scope(self, ctx: AccessContext, incident: Incident) -> bool:
        return ctx.is_admin and self.areas.can_access(ctx, incident.area_code)

    def allowed_targets(self, ctx: AccessContext, incident: Incident) -> FrozenSet[IncidentStatus]:
        if self.admin_in_scope(ctx, incident):
            return ADMIN_TARGETS
        if incident.owner_id == ctx.user_id:
            return OWNER_TARGETS
        return frozenset()

    def can_view(self, ctx: Optional[AccessContext], incident: Incident) -> bool:
        if incident.status == APPROVED:
            return True
        if ctx is None:
            return False
        return incident.owner_id == ctx.user_id or self.admin_in_scope(ctx, incident)

    def _check_change(
        self,
        ctx: AccessContext,
        incident: Incident,
        target: Optional[IncidentStatus],
        is_important: Optional[bool],
    ) -> Optional[DomainError]:
        allowed = self.allowed_targets(ctx, incident)
        if not allowed:
            return forbidden("You are not allowed to modify this incident")
        if target is not None and target not in allowed:
            return forbidden(f"You are not allowed to set status '{target.value}'")
        if is_important is not None and not self.admin_in_scope(ctx, incident):
            return forbidden("Only admins can change the importance flag")
        return None

    # -----------------------------
    # Reads
    # -----------------------------
    def find(self, db: Session, incident_id: int) -> Optional[Incident]:
        return db.get(Incident, incident_id)

    def get(self, db: Session, ctx: Optional[AccessContext], incident_id: int) -> Result[Incident]:
        incident = self.find(db, incident_id)
        # hidden records look exactly like missing ones
        if incident is None or not self.can_view(ctx, incident):
            return Result.failure(ErrorKind.NOT_FOUND, "Incident not found")
        return Result.success(incident)

    def _scoped_query(self, db: Session, ctx: AccessContext) -> Query:
        q = db.query(Incident)
        if ctx.is_admin:
            codes = self.areas.scope_codes(ctx)
            if codes is None:
                return q
            own = Incident.owner_id == ctx.user_id
            return q.filter(or_(Incident.area_code.in_(codes), own)) if codes else q.filter(own)

        visible = Incident.status == APPROVED
        if ctx.area_code:
            visible = and_(visible, Incident.area_code == normalize_code(ctx.area_code))
        return q.filter(or_(visible, Incident.owner_id == ctx.user_id))

    def list_for(
        self,
        db: Session,
        ctx: AccessContext,
        *,
        status: Optional[str] = None,
        incident_type: Optional[str] = None,
        area_code: Optional[str] = None,
        is_important: Optional[bool] = None,
        owner_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Result[List[Incident]]:
        q = self._scoped_query(db, ctx)

        if status:
            parsed = parse_status(status)
            if parsed is None:
                return Result.failure(ErrorKind.VALIDATION, f"Invalid status. Allowed: {', '.join(STATUS_VALUES)}")
            q = q.filter(Incident.status == parsed.value)
        if incident_type:
            q = q.filter(Incident.type == incident_type.strip().lower())
        if area_code:
            q = q.filter(Incident.area_code == normalize_code(area_code))
        if is_important is not None:
            q = q.filter(Incident.is_important.is_(bool(is_important)))
        if owner_id is not None:
            q = q.filter(Incident.owner_id == owner_id)

        rows = q.order_by(Incident.created_at.desc(), Incident.id.desc()).offset(skip).limit(limit).all()
        return Result.success(rows)

    def list_for_owner(self, db: Session, ctx: AccessContext, owner_id: int) -> Result[List[Incident]]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)
        return self.list_for(db, ctx, owner_id=owner_id, limit=500)

    # -----------------------------
    # Public reads (approved only, no owner fields)
    # -----------------------------
    def _approved(self, db: Session) -> Query:
        return db.query(Incident).filter(Incident.status == APPROVED)

    def list_public(self, db: Session, area_code: Optional[str] = None, skip: int = 0, limit: int = 50) -> List[Incident]:
        q = self._approved(db)
        if area_code:
            q = q.filter(Incident.area_code == normalize_code(area_code))
        return q.order_by(Incident.created_at.desc(), Incident.id.desc()).offset(skip).limit(limit).all()

    def latest_approved(self, db: Session, limit: int = 3) -> List[Incident]:
        return self.list_public(db, limit=limit)

    def approved_coordinates(self, db: Session) -> List[Dict[str, float]]:
        rows = (
            db.query(Incident.latitude, Incident.longitude)
            .filter(
                Incident.status == APPROVED,
                Incident.latitude.isnot(None),
                Incident.longitude.isnot(None),
            )
            .all()
        )
        return [{"latitude": lat, "longitude": lon} for lat, lon in rows]

    def public_stats(self, db: Session) -> Dict[str, int]:
        q = db.query(Incident)
        return {
            "total": q.count(),
            "active": q.filter(Incident.status == IncidentStatus.PENDING.value).count(),
            "approved": q.filter(Incident.status == APPROVED).count(),
        }

    def dashboard_stats(self, db: Session, ctx: AccessContext) -> Result[Dict[str, Any]]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)

        codes = self.areas.scope_codes(ctx)
        incidents = db.query(Incident)
        users = db.query(User)
        if codes is not None:
            incidents = incidents.filter(Incident.area_code.in_(codes)) if codes else incidents.filter(false())
            users = users.filter(User.area_code.in_(codes)) if codes else users.filter(false())

        now = utcnow()
        week_ago = now - timedelta(days=7)
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        by_status = {s: incidents.filter(Incident.status == s).count() for s in STATUS_VALUES}
        types = Counter(t for (t,) in incidents.with_entities(Incident.type).all())

        return Result.success(
            {
                "total_incidents": incidents.count(),
                "by_status": by_status,
                "pending": by_status[IncidentStatus.PENDING.value],
                "approved": by_status[APPROVED],
                "rejected": by_status[IncidentStatus.REJECTED.value],
                "important": incidents.filter(Incident.is_important.is_(True)).count(),
                "incidents_today": incidents.filter(Incident.created_at >= today).count(),
                "incidents_this_week": incidents.filter(Incident.created_at >= week_ago).count(),
                "most_common_type": types.most_common(1)[0][0] if types else "N/A",
                "total_users": users.count(),
                "active_users": users.filter(User.updated_at >= week_ago).count(),
            }
        )

    # -----------------------------
    # Create
    # -----------------------------
    def create(self, db: Session, ctx: AccessContext, payload: IncidentCreate) -> Result[Incident]:
        denied = require_active(ctx)
        if denied:
            return Result.from_error(denied)

        code = normalize_code(payload.area_code or ctx.area_code)
        if not code:
            return Result.failure(ErrorKind.VALIDATION, "An area code is required to file a report")
        if self.areas.find_active(db, code) is None:
            return Result.failure(ErrorKind.VALIDATION, "Invalid or inactive area code")

        spam = is_spam(payload.title) or is_spam(payload.description)

        incident = Incident(
            owner_id=ctx.user_id,
            title=payload.title,
            description=payload.description,
            type=payload.type.value,
            location=payload.location,
            latitude=payload.latitude,
            longitude=payload.longitude,
            image_url=payload.image_url,
            area_code=code,
            allow_messages=payload.allow_messages,
            status=(IncidentStatus.REJECTED if spam else IncidentStatus.PENDING).value,
        )
        db.add(incident)
        db.commit()
        db.refresh(incident)

        if not spam:
            log.info("incident %s created by user %s in %s", incident.id, ctx.user_id, code)
            return Result.success(incident)

        log.info("incident %s auto-rejected as spam (user %s)", incident.id, ctx.user_id)
        self.notifier.notify_user(
            db,
            incident.owner_id,
            "incident_auto_rejected",
            {"incident_title": incident.title},
            notif_type="moderation",
            link=f"/incidents/{incident.id}",
        )
        self.audit.record(
            db,
            None,
            "INCIDENT_AUTO_REJECTED",
            "incident",
            incident.id,
            {"reason": "spam", "owner_id": incident.owner_id},
        )
        return Result.failure(
            ErrorKind.VALIDATION,
            "Your report looks like spam and was rejected automatically",
            details={"incident": incident_payload(incident)},
        )

    # -----------------------------
    # Transitions
    # -----------------------------
    def _parse_change(self, status: Optional[str], is_important: Optional[bool]) -> Result[Optional[IncidentStatus]]:
        if status is None and is_important is None:
            return Result.failure(ErrorKind.VALIDATION, "Nothing to update: provide status and/or is_important")
        if status is None:
            return Result.success(None)
        target = parse_status(status)
        if target is None:
            return Result.failure(ErrorKind.VALIDATION, f"Invalid status. Allowed: {', '.join(STATUS_VALUES)}")
        return Result.success(target)

    def update_status(
        self,
        db: Session,
        ctx: AccessContext,
        incident_id: int,
        status: Optional[str] = None,
        is_important: Optional[bool] = None,
    ) -> Result[Incident]:
        parsed = self._parse_change(status, is_important)
        if not parsed.ok:
            return Result.from_error(parsed.error)
        target = parsed.value

        incident = self.find(db, incident_id)
        if incident is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Incident not found")

        denied = self._check_change(ctx, incident, target, is_important)
        if denied:
            return Result.from_error(denied)

        self._apply(db, ctx, incident, target, is_important)
        return Result.success(incident)

    def bulk_transition(
        self,
        db: Session,
        ctx: AccessContext,
        incident_ids: Iterable[int],
        status: Optional[str] = None,
        is_important: Optional[bool] = None,
    ) -> Result[Dict[str, Any]]:
        """
        Apply one status/importance pair to many incidents, one commit per item.
        Unknown or out-of-scope ids are left out of the affected set.
        """
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)

        parsed = self._parse_change(status, is_important)
        if not parsed.ok:
            return Result.from_error(parsed.error)
        target = parsed.value

        requested = list(dict.fromkeys(incident_ids))
        affected: List[int] = []
        for incident_id in requested:
            incident = self.find(db, incident_id)
            if incident is None or not self.admin_in_scope(ctx, incident):
                continue
            self._apply(db, ctx, incident, target, is_important)
            affected.append(incident.id)

        log.info("bulk transition by %s: %s/%s affected", ctx.user_id, len(affected), len(requested))
        return Result.success({"affected": len(affected), "ids": affected})

    def _apply(
        self,
        db: Session,
        ctx: AccessContext,
        incident: Incident,
        target: Optional[IncidentStatus],
        is_important: Optional[bool],
    ) -> Dict[str, Any]:
        diff: Dict[str, Any] = {}
        if target is not None and incident.status != target.value:
            diff["status"] = {"from": incident.status, "to": target.value}
            incident.status = target.value
        if is_important is not None and bool(incident.is_important) != bool(is_important):
            diff["is_important"] = {"from": bool(incident.is_important), "to": bool(is_important)}
            incident.is_important = bool(is_important)

        if diff:
            db.commit()
            db.refresh(incident)

        cleared = 0
        if target is IncidentStatus.PROBLEM_SOLVED:
            cleared = self.clear_threads(db, incident.id)

        if diff:
            if cleared:
                diff["threads_cleared"] = cleared
            self.audit.record(db, ctx, "INCIDENT_UPDATED", "incident", incident.id, diff)

        if "status" in diff and ctx.is_admin and incident.owner_id != ctx.user_id:
            self.notifier.notify_user(
                db,
                incident.owner_id,
                "incident_status_changed",
                {"incident_title": incident.title, "new_status": incident.status},
                link=f"/incidents/{incident.id}",
            )
        return diff

    def clear_threads(self, db: Session, incident_id: int) -> int:
        """Delete every message (and its replies) on the incident; idempotent."""
        messages = db.query(IncidentMessage).filter(IncidentMessage.incident_id == incident_id).all()
        for m in messages:
            db.delete(m)
        if messages:
            db.commit()
            log.info("cleared %s messages on incident %s", len(messages), incident_id)
        return len(messages)

    # -----------------------------
    # Other mutations
    # -----------------------------
    def set_allow_messages(self, db: Session, ctx: AccessContext, incident_id: int, allow: bool) -> Result[Incident]:
        incident = self.find(db, incident_id)
        if incident is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Incident not found")
        if incident.owner_id != ctx.user_id and not self.admin_in_scope(ctx, incident):
            return Result.from_error(forbidden("Only the reporter or an admin can change messaging"))

        incident.allow_messages = bool(allow)
        db.commit()
        db.refresh(incident)

        if incident.owner_id != ctx.user_id:
            self.audit.record(db, ctx, "INCIDENT_MESSAGING_TOGGLED", "incident", incident.id, {"allow_messages": bool(allow)})
        return Result.success(incident)

    def toggle_acknowledgement(self, db: Session, ctx: AccessContext, incident_id: int) -> Result[Incident]:
        loaded = self.get(db, ctx, incident_id)
        if not loaded.ok:
            return loaded
        incident = loaded.value

        existing = next((a for a in incident.acknowledgements if a.user_id == ctx.user_id), None)
        if existing is not None:
            incident.acknowledgements.remove(existing)
        else:
            incident.acknowledgements.append(IncidentAcknowledgement(user_id=ctx.user_id))
        db.commit()
        db.refresh(incident)
        return Result.success(incident)

    def delete(self, db: Session, ctx: AccessContext, incident_id: int) -> Result[dict]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)

        incident = self.find(db, incident_id)
        if incident is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Incident not found")
        if not self.admin_in_scope(ctx, incident):
            return Result.from_error(forbidden("Incident belongs to another area"))

        snapshot = {
            "title": incident.title,
            "owner_id": incident.owner_id,
            "area_code": incident.area_code,
            "status": incident.status,
        }
        self.clear_threads(db, incident.id)
        db.delete(incident)
        db.commit()

        self.audit.record(db, ctx, "INCIDENT_DELETED", "incident", incident_id, snapshot)
        return Result.success({"deleted": True, "id": incident_id})
