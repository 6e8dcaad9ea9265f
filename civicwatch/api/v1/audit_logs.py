# civicwatch/api/v1/audit_logs.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicwatch.core.auth import admin_context, get_db, get_services
from civicwatch.core.rbac import AccessContext
from civicwatch.schemas.audit import AuditLogOut

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=List[AuditLogOut])
def list_audit_logs(
    action: Optional[str] = Query(None, description="e.g. INCIDENT_UPDATED"),
    target_type: Optional[str] = Query(None, description="incident|user|report|area|system"),
    target_id: Optional[int] = Query(None, ge=1),
    actor_id: Optional[int] = Query(None, ge=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return services.audit.list_entries(
        db,
        action=action,
        target_type=target_type,
        target_id=target_id,
        actor_id=actor_id,
        skip=skip,
        limit=limit,
    )
