# civicwatch/schemas/user.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, constr


class UserOut(BaseModel):
    id: int
    email: str
    name: str = ""
    phone: Optional[str] = None
    roles: List[str]
    area_code: Optional[str] = None
    assigned_area_codes: List[str] = []
    is_suspended: bool = False
    suspended_until: Optional[datetime] = None
    warnings: List[Dict[str, Any]] = []
    reward_points: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: int
    name: str = ""

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1, max_length=255)] = None
    phone: Optional[constr(strip_whitespace=True, max_length=50)] = None


class SignupIn(BaseModel):
    email: EmailStr
    password: constr(min_length=6, max_length=128)
    name: constr(strip_whitespace=True, min_length=1, max_length=255)
    phone: Optional[constr(strip_whitespace=True, max_length=50)] = None
    area_code: Optional[constr(strip_whitespace=True, min_length=6, max_length=16)] = Field(
        default=None, description="Area code obtained from the local administrator"
    )


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
