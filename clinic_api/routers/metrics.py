"""Metrics router - dashboard KPIs computed over the caller's calendar."""

from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from clinic_api.core.config import settings
from clinic_api.core.deps import clinic_scope, get_db
from clinic_api.core.policies import ClinicScope
from clinic_api.routers.calendar import DEGRADED_HEADER
from clinic_api.services import appointment_service
from clinic_api.services.metrics_service import calculate_metrics

router = APIRouter()


@router.get("/dashboard")
def dashboard_metrics(
    response: Response,
    scope: ClinicScope = Depends(clinic_scope("metrics.dashboard")),
    db: Session = Depends(get_db),
):
    """Revenue, growth, confirmations, occupancy and average ticket."""
    today = date.today()
    start = datetime.combine(today - timedelta(days=1), time.min)
    end = datetime.combine(today + timedelta(days=1), time.max)
    records, degraded = appointment_service.list_appointments(db, scope, start, end)
    if degraded:
        response.headers[DEGRADED_HEADER] = "true"
    return calculate_metrics(records, today=today, capacity=settings.CLINIC_DAILY_CAPACITY)
