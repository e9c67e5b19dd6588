"""Google API quota usage and a quota-aware health check."""
import time
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from reviewdesk.api.auth import get_current_user, require_roles
from reviewdesk.clock import utcnow
from reviewdesk.models import User
from reviewdesk.models.user import ROLE_ADMIN
from reviewdesk.pipeline.quota import get_monitor
from reviewdesk.schemas import QuotaCheck, QuotaReport, QuotaStats

router = APIRouter()

STARTED_AT = time.monotonic()
MAX_REPORT_DAYS = 366


@router.get("/quota", response_model=QuotaStats)
def quota(user: User = Depends(require_roles(ROLE_ADMIN))):
    return get_monitor().stats()


@router.get("/quota/report", response_model=QuotaReport)
def quota_report(
    start_date: date = Query(...),
    end_date: date = Query(...),
    user: User = Depends(require_roles(ROLE_ADMIN)),
):
    """Calls per day and per endpoint for an inclusive date range."""
    if end_date < start_date:
        raise HTTPException(400, "end_date must not be before start_date")
    if (end_date - start_date).days >= MAX_REPORT_DAYS:
        raise HTTPException(400, f"Report range is limited to {MAX_REPORT_DAYS} days")
    return get_monitor().usage_report(start_date, end_date)


@router.get("/quota/check", response_model=QuotaCheck)
def quota_check(user: User = Depends(get_current_user)):
    """Whether Google API calls would currently be allowed."""
    return get_monitor().should_allow()


@router.get("/health")
def health():
    """503 when the daily Google quota is critical."""
    stats = get_monitor().stats()
    body = {
        "status": "healthy",
        "timestamp": utcnow(),
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 1),
        "quota": {
            "status": stats["status"],
            "daily_usage": f"{stats['daily']['used']}/{stats['daily']['limit']}",
            "daily_remaining": stats["daily"]["remaining"],
            "usage_percent": stats["daily"]["usage_percent"],
        },
    }
    status_code = 503 if stats["status"] == "CRITICAL" else 200
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
