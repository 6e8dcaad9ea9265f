# civicwatch/api/v1/notifications.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from civicwatch.core.auth import admin_context, get_access_context, get_db, get_optional_context, get_services
from civicwatch.core.errors import unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.schemas.notification import AnnouncementCreate, NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationOut])
def list_notifications(
    limit: int = Query(50, ge=1, le=50),
    ctx: Optional[AccessContext] = Depends(get_optional_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """
    Caller's notifications plus broadcasts from the last 48 hours.
    Anonymous callers only see broadcasts.
    """
    return services.notifier.list_for(db, ctx, limit=limit)


@router.patch("/read-all")
def mark_all_read(
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return {"updated": services.notifier.mark_all_read(db, ctx)}


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: int,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.notifier.mark_read(db, ctx, notification_id))


@router.post("/announcements", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def create_announcement(
    payload: AnnouncementCreate,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.notifier.announce(db, ctx, payload.title, payload.message, payload.link))
