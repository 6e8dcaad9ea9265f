# civicwatch/services/messaging.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from civicwatch.core.errors import ErrorKind, Result, forbidden
from civicwatch.core.rbac import AccessContext, require_active, require_admin_only
from civicwatch.db.base import utcnow
from civicwatch.models.incident import Incident
from civicwatch.models.message import IncidentMessage, IncidentMessageReply
from civicwatch.models.report import AdminAction, Report, ReportStatus
from civicwatch.models.user import User
from civicwatch.services.audit import AuditTrail
from civicwatch.services.delivery import DeliveryChain
from civicwatch.services.moderation import ModerationEngine
from civicwatch.services.notifications import NotificationEmitter, render_message

log = logging.getLogger("civicwatch.messaging")


def _pair_filter(incident_id: int, a: int, b: int):
    return and_(
        IncidentMessage.incident_id == incident_id,
        or_(
            and_(IncidentMessage.sender_id == a, IncidentMessage.receiver_id == b),
            and_(IncidentMessage.sender_id == b, IncidentMessage.receiver_id == a),
        ),
    )


def snapshot_thread(messages: List[IncidentMessage]) -> List[Dict[str, Any]]:
    """Flatten messages and their replies into one chronological list."""
    items: List[Tuple[Any, int, Dict[str, Any]]] = []
    for m in messages:
        items.append(
            (
                m.created_at,
                0,
                {
                    "message_id": m.id,
                    "sender_id": m.sender_id,
                    "content": m.content,
                    "created_at": m.created_at.isoformat(),
                },
            )
        )
        for r in m.replies:
            items.append(
                (
                    r.created_at,
                    1,
                    {
                        "message_id": m.id,
                        "reply_id": r.id,
                        "sender_id": r.sender_id,
                        "content": r.content,
                        "created_at": r.created_at.isoformat(),
                    },
                )
            )
    items.sort(key=lambda t: (t[0], t[1]))
    return [entry for _, _, entry in items]


class MessagingSubsystem:
    """
    Incident-scoped direct messages between a reporter and other users,
    plus the abuse-report workflow built on top of those threads.
    """

    def __init__(
        self,
        moderation: ModerationEngine,
        audit: AuditTrail,
        notifier: NotificationEmitter,
        delivery: DeliveryChain,
    ):
        self.moderation = moderation
        self.audit = audit
        self.notifier = notifier
        self.delivery = delivery

    # -----------------------------
    # Threads
    # -----------------------------
    def _open_incident(self, db: Session, incident_id: int) -> Result[Incident]:
        # re-read at call time: closing an incident must stop later sends
        incident = self.moderation.find(db, incident_id)
        if incident is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Incident not found")
        if not incident.allow_messages:
            return Result.failure(ErrorKind.VALIDATION, "Messaging is disabled for this incident")
        if not incident.accepts_messages:
            return Result.failure(ErrorKind.VALIDATION, "This incident is closed; messaging is no longer possible")
        return Result.success(incident)

    def _last_sender_to_owner(self, db: Session, incident: Incident) -> Optional[int]:
        row = (
            db.query(IncidentMessage.sender_id)
            .filter(
                IncidentMessage.incident_id == incident.id,
                IncidentMessage.receiver_id == incident.owner_id,
                IncidentMessage.sender_id != incident.owner_id,
            )
            .order_by(IncidentMessage.created_at.desc(), IncidentMessage.id.desc())
            .first()
        )
        return row[0] if row else None

    def send(
        self,
        db: Session,
        ctx: AccessContext,
        incident_id: int,
        content: str,
        receiver_id: Optional[int] = None,
    ) -> Result[IncidentMessage]:
        denied = require_active(ctx)
        if denied:
            return Result.from_error(denied)

        opened = self._open_incident(db, incident_id)
        if not opened.ok:
            return Result.from_error(opened.error)
        incident = opened.value

        if ctx.user_id == incident.owner_id:
            if receiver_id is None:
                receiver_id = self._last_sender_to_owner(db, incident)
                if receiver_id is None:
                    return Result.failure(ErrorKind.VALIDATION, "No one has messaged you about this incident yet")
        else:
            if receiver_id is not None and receiver_id != incident.owner_id:
                return Result.failure(ErrorKind.VALIDATION, "Messages about an incident go to its reporter")
            receiver_id = incident.owner_id

        if receiver_id == ctx.user_id:
            return Result.failure(ErrorKind.VALIDATION, "You cannot message yourself")

        receiver = db.get(User, receiver_id)
        if receiver is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Receiver not found")

        message = IncidentMessage(
            incident_id=incident.id,
            sender_id=ctx.user_id,
            receiver_id=receiver.id,
            content=content,
        )
        db.add(message)
        db.commit()
        db.refresh(message)

        self.notifier.notify_user(
            db,
            receiver.id,
            "message_received",
            {"incident_title": incident.title, "sender_name": ctx.display_name},
            notif_type="incident_update",
            link=f"/incidents/{incident.id}/messages/{ctx.user_id}",
        )
        return Result.success(message)

    def reply(self, db: Session, ctx: AccessContext, message_id: int, content: str) -> Result[IncidentMessage]:
        denied = require_active(ctx)
        if denied:
            return Result.from_error(denied)

        message = db.get(IncidentMessage, message_id)
        if message is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Message not found")
        if not message.involves(ctx.user_id):
            return Result.from_error(forbidden("You are not part of this conversation"))

        opened = self._open_incident(db, message.incident_id)
        if not opened.ok:
            return Result.from_error(opened.error)
        incident = opened.value

        message.replies.append(IncidentMessageReply(sender_id=ctx.user_id, content=content))
        db.commit()
        db.refresh(message)

        self.notifier.notify_user(
            db,
            message.counterpart_of(ctx.user_id),
            "message_received",
            {"incident_title": incident.title, "sender_name": ctx.display_name},
            notif_type="incident_update",
            link=f"/incidents/{incident.id}/messages/{ctx.user_id}",
        )
        return Result.success(message)

    def thread(self, db: Session, ctx: AccessContext, incident_id: int, other_id: int) -> List[IncidentMessage]:
        return (
            db.query(IncidentMessage)
            .filter(_pair_filter(incident_id, ctx.user_id, other_id))
            .order_by(IncidentMessage.created_at.asc(), IncidentMessage.id.asc())
            .all()
        )

    def conversations(self, db: Session, ctx: AccessContext) -> List[Dict[str, Any]]:
        """One entry per (incident, counterpart), newest thread first."""
        rows = (
            db.query(IncidentMessage)
            .filter(or_(IncidentMessage.sender_id == ctx.user_id, IncidentMessage.receiver_id == ctx.user_id))
            .order_by(IncidentMessage.created_at.desc(), IncidentMessage.id.desc())
            .all()
        )

        latest: Dict[Tuple[int, int], IncidentMessage] = {}
        for m in rows:
            latest.setdefault((m.incident_id, m.counterpart_of(ctx.user_id)), m)

        incident_ids = {k[0] for k in latest}
        user_ids = {k[1] for k in latest}
        incidents = {i.id: i for i in db.query(Incident).filter(Incident.id.in_(incident_ids)).all()} if incident_ids else {}
        users = {u.id: u for u in db.query(User).filter(User.id.in_(user_ids)).all()} if user_ids else {}

        return [
            {
                "incident_id": incident_id,
                "other_user_id": other_id,
                "last_message": message,
                "incident": incidents.get(incident_id),
                "other_user": users.get(other_id),
            }
            for (incident_id, other_id), message in latest.items()
        ]

    def delete_thread(self, db: Session, ctx: AccessContext, incident_id: int, other_id: int) -> int:
        messages = db.query(IncidentMessage).filter(_pair_filter(incident_id, ctx.user_id, other_id)).all()
        for m in messages:
            db.delete(m)
        if messages:
            db.commit()
        log.info("user %s deleted %s messages with %s on incident %s", ctx.user_id, len(messages), other_id, incident_id)
        return len(messages)

    # -----------------------------
    # Abuse reports
    # -----------------------------
    def file_report(
        self,
        db: Session,
        ctx: AccessContext,
        incident_id: int,
        reported_user_id: int,
        reason: str,
        message_id: Optional[int] = None,
        screenshot_url: Optional[str] = None,
    ) -> Result[Report]:
        if reported_user_id == ctx.user_id:
            return Result.failure(ErrorKind.VALIDATION, "You cannot report yourself")

        messages = self.thread(db, ctx, incident_id, reported_user_id)
        if not messages:
            return Result.from_error(forbidden("You can only report users you have a conversation with"))
        if message_id is not None and message_id not in {m.id for m in messages}:
            return Result.failure(ErrorKind.VALIDATION, "Message does not belong to this conversation")

        report = Report(
            reporter_id=ctx.user_id,
            reported_user_id=reported_user_id,
            incident_id=incident_id,
            message_id=message_id,
            reason=reason,
            screenshot_url=screenshot_url,
            chat_snapshot=snapshot_thread(messages),
        )
        db.add(report)
        db.commit()
        db.refresh(report)

        log.info("report %s filed by %s against %s", report.id, ctx.user_id, reported_user_id)
        return Result.success(report)

    def list_reports(self, db: Session, ctx: AccessContext, status: Optional[str] = None) -> Result[List[Report]]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)
        q = db.query(Report)
        if status:
            q = q.filter(Report.status == status.strip().lower())
        return Result.success(q.order_by(Report.created_at.desc(), Report.id.desc()).all())

    def get_report(self, db: Session, ctx: AccessContext, report_id: int) -> Result[Report]:
        denied = require_admin_only(ctx)
        if denied:
            return Result.from_error(denied)
        report = db.get(Report, report_id)
        if report is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Report not found")
        return Result.success(report)

    def review_report(
        self,
        db: Session,
        ctx: AccessContext,
        report_id: int,
        action: str,
        duration_days: Optional[int] = None,
        note: Optional[str] = None,
    ) -> Result[Report]:
        loaded = self.get_report(db, ctx, report_id)
        if not loaded.ok:
            return loaded
        report = loaded.value

        if report.status == ReportStatus.RESOLVED.value:
            return Result.failure(ErrorKind.CONFLICT, "Report has already been reviewed")
        if action not in ("warn", "suspend", "dismiss"):
            return Result.failure(ErrorKind.VALIDATION, "Action must be one of: warn, suspend, dismiss")

        now = utcnow()
        user = db.get(User, report.reported_user_id)
        if action != "dismiss" and user is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Reported user no longer exists")

        notice = None
        if action == "warn":
            user.warnings = list(user.warnings or []) + [
                {"reason": report.reason, "report_id": report.id, "issued_by": ctx.user_id, "issued_at": now.isoformat()}
            ]
            report.admin_action = AdminAction.WARNED.value
            notice = ("user_warned", {"reason": report.reason})
        elif action == "suspend":
            user.is_suspended = True
            user.suspended_until = now + timedelta(days=duration_days) if duration_days else None
            report.admin_action = AdminAction.SUSPENDED.value
            until = user.suspended_until.isoformat() if user.suspended_until else None
            notice = ("user_suspended", {"reason": report.reason, "until": until})
        else:
            report.admin_action = AdminAction.NONE.value

        report.status = ReportStatus.RESOLVED.value
        report.reviewed_by = ctx.user_id
        report.reviewed_at = now
        report.review_note = note
        db.commit()
        db.refresh(report)

        self.audit.record(
            db,
            ctx,
            "REPORT_REVIEWED",
            "report",
            report.id,
            {"action": action, "reported_user_id": report.reported_user_id, "duration_days": duration_days},
        )

        if notice is not None:
            kind, payload = notice
            self.notifier.notify_user(db, user.id, kind, payload, notif_type="moderation")
            msg = render_message(kind, payload)
            self.delivery.send(user.email, msg["title"], msg["message"])
        return Result.success(report)

    def delete_report(self, db: Session, ctx: AccessContext, report_id: int) -> Result[dict]:
        loaded = self.get_report(db, ctx, report_id)
        if not loaded.ok:
            return Result.from_error(loaded.error)
        report = loaded.value

        snapshot = {"reporter_id": report.reporter_id, "reported_user_id": report.reported_user_id, "status": report.status}
        db.delete(report)
        db.commit()

        self.audit.record(db, ctx, "REPORT_DELETED", "report", report_id, snapshot)
        return Result.success({"deleted": True, "id": report_id})
