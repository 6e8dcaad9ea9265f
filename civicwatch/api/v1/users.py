# civicwatch/api/v1/users.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicwatch.core.auth import admin_context, get_access_context, get_db, get_services, super_admin_context
from civicwatch.core.errors import unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.schemas.incident import IncidentOut
from civicwatch.schemas.user import ProfileUpdate, UserOut

router = APIRouter(prefix="/users", tags=["users"])


# -----------------------------
# Self-service
# -----------------------------
@router.patch("/me", response_model=UserOut)
def update_profile(
    payload: ProfileUpdate,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.accounts.update_profile(db, ctx, payload))


# -----------------------------
# Administration
# -----------------------------
@router.get("", response_model=List[UserOut])
def list_users(
    search: Optional[str] = Query(None, description="Match on email or name"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Admins see users of their areas; super-admins see everyone."""
    return unwrap(services.accounts.list_users(db, ctx, search=search, skip=skip, limit=limit))


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.accounts.get_user(db, ctx, user_id))


@router.get("/{user_id}/incidents", response_model=List[IncidentOut])
def user_incidents(
    user_id: int,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.moderation.list_for_owner(db, ctx, user_id))


@router.post("/{user_id}/promote", response_model=UserOut)
def promote_user(
    user_id: int,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.accounts.promote(db, ctx, user_id))


@router.post("/{user_id}/demote", response_model=UserOut)
def demote_user(
    user_id: int,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.accounts.demote(db, ctx, user_id))


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.accounts.delete_user(db, ctx, user_id))
