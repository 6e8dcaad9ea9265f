# civicwatch/schemas/report.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, conint, constr

ReviewAction = Literal["warn", "suspend", "dismiss"]


class ReportCreate(BaseModel):
    reported_user_id: conint(gt=0)
    reason: constr(strip_whitespace=True, min_length=3, max_length=2000)
    message_id: Optional[conint(gt=0)] = None
    screenshot_url: Optional[constr(strip_whitespace=True, max_length=500)] = None


class ReportReview(BaseModel):
    action: ReviewAction
    duration_days: Optional[conint(gt=0, le=3650)] = None
    note: Optional[constr(strip_whitespace=True, max_length=2000)] = None


class ReportOut(BaseModel):
    id: int
    reporter_id: int
    reported_user_id: int
    incident_id: int
    message_id: Optional[int] = None
    reason: str
    screenshot_url: Optional[str] = None
    chat_snapshot: List[Dict[str, Any]] = []
    status: str
    admin_action: str
    review_note: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
