# civicwatch/schemas/message.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, conint, constr

from civicwatch.schemas.user import UserSummary


class MessageCreate(BaseModel):
    content: constr(strip_whitespace=True, min_length=1, max_length=5000)
    receiver_id: Optional[conint(gt=0)] = None


class ReplyCreate(BaseModel):
    content: constr(strip_whitespace=True, min_length=1, max_length=5000)


class ReplyOut(BaseModel):
    id: int
    sender_id: int
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    id: int
    incident_id: int
    sender_id: int
    receiver_id: int
    content: str
    replies: List[ReplyOut] = []
    created_at: datetime

    class Config:
        from_attributes = True


class IncidentSummary(BaseModel):
    id: int
    title: str
    status: str

    class Config:
        from_attributes = True


class ConversationOut(BaseModel):
    incident_id: int
    other_user_id: int
    last_message: MessageOut
    incident: Optional[IncidentSummary] = None
    other_user: Optional[UserSummary] = None
