"""Calendar router - unified appointment/lead view for the scheduling UI.

Paths: /api/calendar/appointments and /api/calendar/appointments/{id}
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from clinic_api.core.deps import clinic_scope, get_db
from clinic_api.core.policies import ClinicScope
from clinic_api.schemas.appointment import AppointmentRecord, AppointmentRef, AppointmentUpdate
from clinic_api.services import appointment_service
from clinic_api.utils.datetime_parsing import parse_query_range

router = APIRouter()

# Set when one of the two sources failed and the list is partial
DEGRADED_HEADER = "X-Calendar-Degraded"


@router.get("/appointments", response_model=list[AppointmentRecord])
def list_calendar(
    response: Response,
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    scope: ClinicScope = Depends(clinic_scope("appointments.list")),
    db: Session = Depends(get_db),
):
    """Appointments and dated leads overlapping the range, ordered by start."""
    start, end = parse_query_range(start_date, end_date)
    records, degraded = appointment_service.list_appointments(db, scope, start, end)
    if degraded:
        response.headers[DEGRADED_HEADER] = "true"
    return records


@router.patch("/appointments/{appointment_id}", response_model=AppointmentRecord)
def update_calendar_entry(
    appointment_id: str,
    data: AppointmentUpdate,
    scope: ClinicScope = Depends(clinic_scope("appointments.update")),
    db: Session = Depends(get_db),
):
    """Drag-and-drop reschedule or edit; ``lead-<n>`` ids hit the leads table."""
    ref = AppointmentRef.parse(appointment_id)
    return appointment_service.update_appointment(db, scope, ref, data)


@router.delete("/appointments/{appointment_id}", status_code=204)
def delete_calendar_entry(
    appointment_id: str,
    scope: ClinicScope = Depends(clinic_scope("appointments.delete")),
    db: Session = Depends(get_db),
):
    ref = AppointmentRef.parse(appointment_id)
    appointment_service.delete_appointment(db, scope, ref)
    return Response(status_code=204)
