# civicwatch/services/notifications.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from civicwatch.core.errors import ErrorKind, Result
from civicwatch.core.rbac import AccessContext, require_admin_only
from civicwatch.db.base import utcnow
from civicwatch.models.notification import NOTIFICATION_TTL, Notification
from civicwatch.services.audit import AuditTrail

log = logging.getLogger("civicwatch.notifications")

MAX_LISTED = 50

STATUS_BLURBS = {
    "pending": "It is back in the review queue.",
    "under process": "Our team is working on it.",
    "approved": "It has been approved and is now visible to your community.",
    "rejected": "It was rejected by a moderator.",
    "problem solved": "It has been marked as solved and its conversations were closed.",
}


# ---------------------------------
# Message templates (title/message) - EN only
# ---------------------------------
def render_message(kind: str, payload: Dict[str, Any]) -> Dict[str, str]:
    """Lightweight templates for user-facing alerts."""
    title = payload.get("incident_title") or "your report"

    if kind == "incident_status_changed":
        status = payload.get("new_status") or "-"
        return {
            "title": "Incident status updated",
            "message": f"Your report \"{title}\" is now '{status}'. {STATUS_BLURBS.get(status, '')}".strip(),
        }

    if kind == "incident_auto_rejected":
        return {
            "title": "Report automatically rejected",
            "message": (
                f"Your report \"{title}\" was flagged as spam and rejected automatically. "
                "Please resubmit it with a clear title and description."
            ),
        }

    if kind == "message_received":
        return {
            "title": "New message",
            "message": f"{payload.get('sender_name') or 'Someone'} sent you a message about \"{title}\".",
        }

    if kind == "user_warned":
        return {
            "title": "Warning from moderators",
            "message": f"You received a warning for your conduct in a conversation. Reason: {payload.get('reason') or '-'}",
        }

    if kind == "user_suspended":
        until = payload.get("until")
        span = f"until {until}" if until else "indefinitely"
        return {
            "title": "Account suspended",
            "message": f"Your account has been suspended {span}. Reason: {payload.get('reason') or '-'}",
        }

    return {"title": payload.get("title") or "Notification", "message": payload.get("message") or ""}


class NotificationEmitter:
    """
    User-facing alerts. Rows expire NOTIFICATION_TTL after creation: reads
    filter by age and `purge_expired` hard-deletes what is left behind.
    """

    def __init__(self, audit: AuditTrail, ttl=NOTIFICATION_TTL):
        self.audit = audit
        self.ttl = ttl

    # -----------------------------
    # Producers
    # -----------------------------
    def notify_user(
        self,
        db: Session,
        user_id: int,
        kind: str,
        payload: Dict[str, Any],
        *,
        notif_type: str = "incident_update",
        link: Optional[str] = None,
    ) -> Optional[Notification]:
        """Best-effort: failures are logged and swallowed."""
        try:
            msg = render_message(kind, payload)
            row = Notification(
                user_id=user_id,
                title=msg["title"],
                message=msg["message"],
                type=notif_type,
                link=link,
            )
            db.add(row)
            db.commit()
            return row
        except Exception:
            log.exception("notification failed kind=%s user_id=%s", kind, user_id)
            db.rollback()
            return None

    def broadcast(
        self,
        db: Session,
        title: str,
        message: str,
        *,
        notif_type: str = "system_alert",
        link: Optional[str] = None,
    ) -> Optional[Notification]:
        """Global row (user_id NULL). Best-effort like notify_user."""
        try:
            row = Notification(user_id=None, title=title, message=message, type=notif_type, link=link)
            db.add(row)
            db.commit()
            db.refresh(row)
            return row
        except Exception:
            log.exception("broadcast failed title=%r", title)
            db.rollback()
            return None

    def announce(
        self,
        db: Session,
        ctx: AccessContext,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> Result[Notification]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)

        row = self.broadcast(db, title, message, notif_type="announcement", link=link)
        if row is None:
            return Result.failure(ErrorKind.INTERNAL, "Announcement could not be stored")

        self.audit.record(db, ctx, "ANNOUNCEMENT_CREATED", "system", row.id, {"title": title})
        return Result.success(row)

    # -----------------------------
    # Reads / read-state
    # -----------------------------
    def _cutoff(self, now: Optional[datetime] = None) -> datetime:
        return (now or utcnow()) - self.ttl

    def list_for(
        self,
        db: Session,
        ctx: Optional[AccessContext],
        now: Optional[datetime] = None,
        limit: int = MAX_LISTED,
    ) -> List[Notification]:
        """Caller's own plus broadcast rows; anonymous callers get broadcasts only."""
        q = db.query(Notification).filter(Notification.created_at >= self._cutoff(now))
        if ctx is None:
            q = q.filter(Notification.user_id.is_(None))
        else:
            q = q.filter(or_(Notification.user_id == ctx.user_id, Notification.user_id.is_(None)))
        return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_read(self, db: Session, ctx: AccessContext, notification_id: int) -> Result[Notification]:
        row = (
            db.query(Notification)
            .filter(
                Notification.id == notification_id,
                Notification.user_id == ctx.user_id,
                Notification.created_at >= self._cutoff(),
            )
            .first()
        )
        if row is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Notification not found or is global")
        row.is_read = True
        db.commit()
        db.refresh(row)
        return Result.success(row)

    def mark_all_read(self, db: Session, ctx: AccessContext) -> int:
        count = (
            db.query(Notification)
            .filter(Notification.user_id == ctx.user_id, Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        db.commit()
        return int(count or 0)

    def purge_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        count = (
            db.query(Notification)
            .filter(Notification.created_at < self._cutoff(now))
            .delete(synchronize_session=False)
        )
        db.commit()
        if count:
            log.info("purged %s expired notifications", count)
        return int(count or 0)
