# civicwatch/schemas/notification.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, constr


class AnnouncementCreate(BaseModel):
    title: constr(strip_whitespace=True, min_length=1, max_length=200)
    message: constr(strip_whitespace=True, min_length=1, max_length=5000)
    link: Optional[constr(strip_whitespace=True, max_length=500)] = None


class NotificationOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    title: str
    message: str
    type: str
    is_read: bool
    link: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
