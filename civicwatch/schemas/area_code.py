# civicwatch/schemas/area_code.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, conint, constr


class AreaCodeCreate(BaseModel):
    name: constr(strip_whitespace=True, max_length=255) = Field(..., description="Display name (min 2 chars)")
    description: Optional[constr(max_length=2000)] = ""
    prefix: Optional[constr(strip_whitespace=True, max_length=2)] = Field(
        default=None, description="Optional 1-2 character alphanumeric prefix"
    )


class AreaAdminsAssign(BaseModel):
    admin_ids: List[conint(gt=0)] = Field(..., description="User IDs holding the admin capability")


class AreaAdminRemove(BaseModel):
    admin_id: conint(gt=0)


class AreaCodeOut(BaseModel):
    id: int
    code: str
    name: str
    description: str = ""
    is_active: bool
    created_by: Optional[int] = None
    admin_ids: List[int] = []
    total_users: int = 0
    total_incidents: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AreaCodePublic(BaseModel):
    code: str
    name: str
    description: str = ""

    class Config:
        from_attributes = True


class AreaCodeValidation(BaseModel):
    valid: bool
    area_code: Optional[AreaCodePublic] = None
