# civicwatch/api/v1/messages.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from civicwatch.core.auth import get_access_context, get_db, get_services
from civicwatch.core.errors import unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.schemas.message import ConversationOut, MessageCreate, MessageOut, ReplyCreate
from civicwatch.schemas.report import ReportCreate, ReportOut

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/conversations", response_model=List[ConversationOut])
def list_conversations(
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Latest message per (incident, counterpart), newest first."""
    return services.messaging.conversations(db, ctx)


@router.post("/incidents/{incident_id}", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    incident_id: int,
    payload: MessageCreate,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.messaging.send(db, ctx, incident_id, payload.content, payload.receiver_id))


@router.get("/incidents/{incident_id}/with/{other_id}", response_model=List[MessageOut])
def get_thread(
    incident_id: int,
    other_id: int,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return services.messaging.thread(db, ctx, incident_id, other_id)


@router.delete("/incidents/{incident_id}/with/{other_id}")
def delete_thread(
    incident_id: int,
    other_id: int,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    deleted = services.messaging.delete_thread(db, ctx, incident_id, other_id)
    return {"deleted": deleted}


@router.post("/{message_id}/replies", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def reply_to_message(
    message_id: int,
    payload: ReplyCreate,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.messaging.reply(db, ctx, message_id, payload.content))


@router.post("/incidents/{incident_id}/report", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
def report_user(
    incident_id: int,
    payload: ReportCreate,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(
        services.messaging.file_report(
            db,
            ctx,
            incident_id,
            payload.reported_user_id,
            payload.reason,
            message_id=payload.message_id,
            screenshot_url=payload.screenshot_url,
        )
    )
