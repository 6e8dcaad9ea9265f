# civicwatch/schemas/incident.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, confloat, conint, constr

from civicwatch.models.incident import IncidentType


class IncidentCreate(BaseModel):
    """
    Create payload. Owner is the authenticated caller; status is decided
    server-side (pending, or rejected by the spam check).
    """

    # min_length=1: short text is the spam check's call, not the schema's
    title: constr(strip_whitespace=True, min_length=1, max_length=200)
    description: constr(strip_whitespace=True, min_length=1, max_length=5000)
    type: IncidentType
    location: constr(strip_whitespace=True, min_length=1, max_length=255)
    latitude: Optional[confloat(ge=-90, le=90)] = None
    longitude: Optional[confloat(ge=-180, le=180)] = None
    image_url: Optional[constr(strip_whitespace=True, max_length=500)] = None
    area_code: Optional[constr(strip_whitespace=True, max_length=16)] = Field(
        default=None, description="Defaults to the caller's home area code"
    )
    allow_messages: bool = True


class IncidentStatusUpdate(BaseModel):
    """Status and/or importance change. Status is validated by the moderation engine."""

    status: Optional[str] = None
    is_important: Optional[bool] = None


class IncidentBulkUpdate(IncidentStatusUpdate):
    ids: List[conint(gt=0)] = Field(..., min_length=1)


class IncidentMessagingUpdate(BaseModel):
    allow_messages: bool


class IncidentOut(BaseModel):
    id: int
    owner_id: int
    title: str
    description: str
    type: str
    location: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    image_url: Optional[str] = None
    status: str
    is_important: bool
    allow_messages: bool
    area_code: str
    acknowledged_by: List[int] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class IncidentPublicOut(BaseModel):
    """Approved incident as shown to anonymous visitors (no owner reference)."""

    id: int
    title: str
    description: str
    type: str
    location: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    image_url: Optional[str] = None
    area_code: str
    created_at: datetime

    class Config:
        from_attributes = True


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class BulkResult(BaseModel):
    affected: int
    ids: List[int]
