# civicwatch/api/v1/reports.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicwatch.core.auth import admin_context, get_db, get_services
from civicwatch.core.errors import unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.schemas.report import ReportOut, ReportReview

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("", response_model=List[ReportOut])
def list_reports(
    status_f: Optional[str] = Query(None, alias="status", description="pending|reviewed|resolved"),
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.messaging.list_reports(db, ctx, status=status_f))


@router.get("/{report_id}", response_model=ReportOut)
def get_report(
    report_id: int,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.messaging.get_report(db, ctx, report_id))


@router.post("/{report_id}/review", response_model=ReportOut)
def review_report(
    report_id: int,
    payload: ReportReview,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """warn: add a warning; suspend: N days or indefinitely; dismiss: no action."""
    return unwrap(
        services.messaging.review_report(
            db, ctx, report_id, payload.action, duration_days=payload.duration_days, note=payload.note
        )
    )


@router.delete("/{report_id}")
def delete_report(
    report_id: int,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.messaging.delete_report(db, ctx, report_id))
