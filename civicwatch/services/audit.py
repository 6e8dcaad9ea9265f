# civicwatch/services/audit.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from civicwatch.core.rbac import AccessContext
from civicwatch.models.audit_log import AuditLogEntry

log = logging.getLogger("civicwatch.audit")

TARGET_TYPES = frozenset({"incident", "user", "report", "area", "system"})


def _dumps_details(details: Union[str, Dict[str, Any], None]) -> str:
    if details is None:
        return ""
    if isinstance(details, str):
        return details
    try:
        return json.dumps(details, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return str(details)


class AuditTrail:
    """
    Append-only log of administrative actions.

    Writes are best-effort: a failed insert is logged and rolled back but never
    surfaces to the caller, whose primary mutation is already committed.
    """

    def record(
        self,
        db: Session,
        actor: Optional[AccessContext],
        action: str,
        target_type: str,
        target_id: Optional[int] = None,
        details: Union[str, Dict[str, Any], None] = None,
    ) -> Optional[AuditLogEntry]:
        if target_type not in TARGET_TYPES:
            target_type = "system"
        try:
            entry = AuditLogEntry(
                actor_id=actor.user_id if actor else None,
                actor_name=actor.display_name if actor else "system",
                action=action,
                target_type=target_type,
                target_id=target_id,
                details=_dumps_details(details),
            )
            db.add(entry)
            db.commit()
            return entry
        except Exception:
            log.exception(
                "audit write failed action=%s target=%s:%s actor=%s",
                action,
                target_type,
                target_id,
                actor.user_id if actor else None,
            )
            db.rollback()
            return None

    def list_entries(
        self,
        db: Session,
        *,
        action: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[int] = None,
        actor_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLogEntry]:
        q = db.query(AuditLogEntry)
        if action:
            q = q.filter(AuditLogEntry.action == action)
        if target_type:
            q = q.filter(AuditLogEntry.target_type == target_type)
        if target_id is not None:
            q = q.filter(AuditLogEntry.target_id == target_id)
        if actor_id is not None:
            q = q.filter(AuditLogEntry.actor_id == actor_id)
        return (
            q.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
