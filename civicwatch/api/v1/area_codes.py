# civicwatch/api/v1/area_codes.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from civicwatch.core.auth import get_db, get_services, super_admin_context
from civicwatch.core.errors import unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.schemas.area_code import (
    AreaAdminRemove,
    AreaAdminsAssign,
    AreaCodeCreate,
    AreaCodeOut,
    AreaCodePublic,
    AreaCodeValidation,
)

router = APIRouter(prefix="/area-codes", tags=["area-codes"])


# -----------------------------
# Public
# -----------------------------
@router.get("/validate/{code}", response_model=AreaCodeValidation)
def validate_area_code(
    code: str,
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Onboarding check; unknown and inactive codes answer valid=false."""
    valid, area = services.areas.validate(db, code)
    return AreaCodeValidation(valid=valid, area_code=AreaCodePublic.model_validate(area) if area else None)


# -----------------------------
# Super-admin
# -----------------------------
@router.post("", response_model=AreaCodeOut, status_code=status.HTTP_201_CREATED)
def generate_area_code(
    payload: AreaCodeCreate,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.areas.generate(db, ctx, payload.name, payload.description, payload.prefix))


@router.get("", response_model=List[AreaCodeOut])
def list_area_codes(
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.areas.list_areas(db, ctx))


@router.get("/{area_id}", response_model=AreaCodeOut)
def get_area_code(
    area_id: int,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.areas.get_area(db, ctx, area_id))


@router.post("/{area_id}/admins", response_model=AreaCodeOut)
def assign_admins(
    area_id: int,
    payload: AreaAdminsAssign,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.areas.assign_admins(db, ctx, area_id, payload.admin_ids))


@router.post("/{area_id}/remove-admin", response_model=AreaCodeOut)
def remove_admin(
    area_id: int,
    payload: AreaAdminRemove,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.areas.remove_admin(db, ctx, area_id, payload.admin_id))


@router.patch("/{area_id}/toggle-status", response_model=AreaCodeOut)
def toggle_status(
    area_id: int,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.areas.toggle_active(db, ctx, area_id))


@router.post("/{area_id}/recompute-stats", response_model=AreaCodeOut)
def recompute_stats(
    area_id: int,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    area = unwrap(services.areas.get_area(db, ctx, area_id))
    return unwrap(services.areas.recompute_stats(db, area.code))


@router.delete("/{area_id}")
def delete_area_code(
    area_id: int,
    ctx: AccessContext = Depends(super_admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.areas.delete(db, ctx, area_id))
