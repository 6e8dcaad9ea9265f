# civicwatch/api/health.py
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from civicwatch.core.auth import get_db
from civicwatch.models.area_code import AreaCode

router = APIRouter(tags=["health"])

NO_STORE = {"Cache-Control": "no-store"}


def _scheduler_state(request: Request) -> str:
    sched = getattr(request.app.state, "scheduler", None)
    if sched is None:
        return "disabled"
    return "running" if sched.running else "stopped"


@router.get("/healthz")
def healthz(request: Request) -> dict:
    """Liveness; never touches the database."""
    return {
        "ok": True,
        "service": "civicwatch",
        "scheduler": _scheduler_state(request),
        "ts": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/readyz")
def readyz(request: Request, db: Session = Depends(get_db)):
    # ready once the schema answers; area codes gate every signup and report
    t0 = time.perf_counter()
    try:
        active_areas = db.query(AreaCode).filter(AreaCode.is_active.is_(True)).count()
    except SQLAlchemyError as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "db": "down", "error": str(e.__class__.__name__)},
            headers=NO_STORE,
        )

    return JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "db": "up",
            "db_latency_ms": round((time.perf_counter() - t0) * 1000.0, 2),
            "active_areas": active_areas,
            "scheduler": _scheduler_state(request),
        },
        headers=NO_STORE,
    )
