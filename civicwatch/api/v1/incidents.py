# civicwatch/api/v1/incidents.py
from __future__ import annotations

import csv
import io
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from civicwatch.core.auth import admin_context, get_access_context, get_db, get_optional_context, get_services
from civicwatch.core.errors import ErrorKind, Result, unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.models.incident import Incident
from civicwatch.schemas.incident import (
    BulkResult,
    Coordinates,
    IncidentBulkUpdate,
    IncidentCreate,
    IncidentMessagingUpdate,
    IncidentOut,
    IncidentPublicOut,
    IncidentStatusUpdate,
)

router = APIRouter(prefix="/incidents", tags=["incidents"])

EXPORT_FORMATS = ("csv", "json", "xlsx")
EXPORT_COLUMNS = (
    "id",
    "owner_id",
    "title",
    "description",
    "type",
    "location",
    "latitude",
    "longitude",
    "status",
    "is_important",
    "area_code",
    "created_at",
    "updated_at",
)
# cells starting with these are treated as formulas by spreadsheet apps
_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ---------------------------
# PUBLIC (approved only, no owner fields)
# ---------------------------
@router.get("/public", response_model=List[IncidentPublicOut])
def list_public(
    area_code: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return services.moderation.list_public(db, area_code=area_code, skip=skip, limit=limit)


@router.get("/latest", response_model=List[IncidentPublicOut])
def latest_incidents(
    limit: int = Query(3, ge=1, le=20),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return services.moderation.latest_approved(db, limit=limit)


@router.get("/coordinates", response_model=List[Coordinates])
def incident_coordinates(
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return services.moderation.approved_coordinates(db)


@router.get("/stats/public")
def public_stats(
    db: Session = Depends(get_db),
    services=Depends(get_services),
) -> Dict[str, int]:
    return services.moderation.public_stats(db)


# ---------------------------
# CREATE / LIST
# ---------------------------
@router.post("", response_model=IncidentOut, status_code=status.HTTP_201_CREATED)
def create_incident(
    payload: IncidentCreate,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """
    File a report in the caller's (or the given) area.
    Spam is persisted as rejected and answered with 400 carrying the record.
    """
    return unwrap(services.moderation.create(db, ctx, payload))


@router.get("", response_model=List[IncidentOut])
def list_incidents(
    status_f: Optional[str] = Query(None, alias="status"),
    type: Optional[str] = Query(None, description="Incident type"),
    area_code: Optional[str] = Query(None),
    is_important: Optional[bool] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(
        services.moderation.list_for(
            db,
            ctx,
            status=status_f,
            incident_type=type,
            area_code=area_code,
            is_important=is_important,
            skip=skip,
            limit=limit,
        )
    )


# ---------------------------
# BULK
# ---------------------------
@router.patch("/bulk", response_model=BulkResult)
def bulk_update(
    payload: IncidentBulkUpdate,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(
        services.moderation.bulk_transition(db, ctx, payload.ids, status=payload.status, is_important=payload.is_important)
    )


# ---------------------------
# EXPORT (CSV / JSON / XLSX)
# ---------------------------
def _rowdict(x: Incident) -> Dict[str, Any]:
    return {
        "id": x.id,
        "owner_id": x.owner_id,
        "title": x.title,
        "description": x.description,
        "type": x.type,
        "location": x.location,
        "latitude": x.latitude,
        "longitude": x.longitude,
        "status": x.status,
        "is_important": bool(x.is_important),
        "area_code": x.area_code,
        "created_at": x.created_at.isoformat() if x.created_at else None,
        "updated_at": x.updated_at.isoformat() if x.updated_at else None,
    }


def _csv_safe(value: Any) -> Any:
    if isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


@router.get("/export")
def export_incidents(
    format: str = Query("csv"),
    status_f: Optional[str] = Query(None, alias="status"),
    type: Optional[str] = Query(None),
    area_code: Optional[str] = Query(None),
    limit: int = Query(20000, ge=1, le=200000),
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    fmt = (format or "").strip().lower()
    if fmt not in EXPORT_FORMATS:
        unwrap(Result.failure(ErrorKind.VALIDATION, f"Unsupported format. Allowed: {', '.join(EXPORT_FORMATS)}"))

    rows = unwrap(
        services.moderation.list_for(db, ctx, status=status_f, incident_type=type, area_code=area_code, limit=limit)
    )
    data = [_rowdict(r) for r in rows]
    cols = list(EXPORT_COLUMNS)

    services.audit.record(db, ctx, "INCIDENTS_EXPORTED", "system", None, {"format": fmt, "rows": len(data)})

    if fmt == "json":
        return JSONResponse(content={"items": data, "count": len(data)})

    if fmt == "xlsx":
        from openpyxl import Workbook

        wb = Workbook()
        ws = wb.active
        ws.title = "incidents"
        ws.append(cols)
        for r in data:
            ws.append([r.get(k) for k in cols])

        stream = io.BytesIO()
        wb.save(stream)
        stream.seek(0)
        return StreamingResponse(
            stream,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": "attachment; filename=incidents.xlsx"},
        )

    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=cols)
    writer.writeheader()
    for r in data:
        writer.writerow({k: _csv_safe(v) for k, v in r.items()})
    out.seek(0)
    return StreamingResponse(
        iter([out.getvalue()]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": "attachment; filename=incidents.csv"},
    )


# ---------------------------
# SINGLE INCIDENT
# ---------------------------
@router.get("/{incident_id}", response_model=None)
def get_incident(
    incident_id: int,
    ctx: Optional[AccessContext] = Depends(get_optional_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
) -> Union[IncidentOut, IncidentPublicOut]:
    """Anonymous callers get the public shape: no owner or acknowledgement ids."""
    incident = unwrap(services.moderation.get(db, ctx, incident_id))
    if ctx is None:
        return IncidentPublicOut.model_validate(incident)
    return IncidentOut.model_validate(incident)


@router.patch("/{incident_id}/status", response_model=IncidentOut)
def update_status(
    incident_id: int,
    payload: IncidentStatusUpdate,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(
        services.moderation.update_status(db, ctx, incident_id, status=payload.status, is_important=payload.is_important)
    )


@router.patch("/{incident_id}/messaging", response_model=IncidentOut)
def set_messaging(
    incident_id: int,
    payload: IncidentMessagingUpdate,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.moderation.set_allow_messages(db, ctx, incident_id, payload.allow_messages))


@router.post("/{incident_id}/acknowledge", response_model=IncidentOut)
def acknowledge(
    incident_id: int,
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.moderation.toggle_acknowledgement(db, ctx, incident_id))


@router.delete("/{incident_id}")
def delete_incident(
    incident_id: int,
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    return unwrap(services.moderation.delete(db, ctx, incident_id))
