# civicwatch/api/v1/stats.py
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from civicwatch.core.auth import admin_context, get_db, get_services
from civicwatch.core.errors import unwrap
from civicwatch.core.rbac import AccessContext

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/dashboard")
def dashboard(
    ctx: AccessContext = Depends(admin_context),
    db: Session = Depends(get_db),
    services=Depends(get_services),
) -> Dict[str, Any]:
    """Counters for the admin dashboard, limited to the caller's areas."""
    return unwrap(services.moderation.dashboard_stats(db, ctx))
