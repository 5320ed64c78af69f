"""Appointments router - single-record access and creation.

Ids are composite: a bare integer addresses an appointment, ``lead-<n>`` a
legacy lead.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from clinic_api.core.deps import clinic_scope, get_db
from clinic_api.core.policies import ClinicScope
from clinic_api.schemas.appointment import (
    AppointmentCreate,
    AppointmentRecord,
    AppointmentRef,
    AppointmentUpdate,
)
from clinic_api.services import appointment_service

router = APIRouter()


@router.get("/archived", response_model=list[AppointmentRecord])
def list_archived(
    scope: ClinicScope = Depends(clinic_scope("appointments.list")),
    db: Session = Depends(get_db),
):
    """Archived appointments and leads, most recent first."""
    return appointment_service.list_archived(db, scope)


@router.post("", response_model=AppointmentRecord, status_code=201)
def create_appointment(
    data: AppointmentCreate,
    scope: ClinicScope = Depends(clinic_scope("appointments.create")),
    db: Session = Depends(get_db),
):
    return appointment_service.create_appointment(db, scope, data)


@router.get("/{appointment_id}", response_model=AppointmentRecord)
def get_appointment(
    appointment_id: str,
    scope: ClinicScope = Depends(clinic_scope("appointments.read")),
    db: Session = Depends(get_db),
):
    ref = AppointmentRef.parse(appointment_id)
    return appointment_service.get_appointment(db, scope, ref)


@router.patch("/{appointment_id}", response_model=AppointmentRecord)
def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    scope: ClinicScope = Depends(clinic_scope("appointments.update")),
    db: Session = Depends(get_db),
):
    ref = AppointmentRef.parse(appointment_id)
    return appointment_service.update_appointment(db, scope, ref, data)


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(
    appointment_id: str,
    scope: ClinicScope = Depends(clinic_scope("appointments.delete")),
    db: Session = Depends(get_db),
):
    ref = AppointmentRef.parse(appointment_id)
    appointment_service.delete_appointment(db, scope, ref)
    return Response(status_code=204)


@router.post("/{appointment_id}/restore", response_model=AppointmentRecord)
def restore_appointment(
    appointment_id: str,
    scope: ClinicScope = Depends(clinic_scope("appointments.update")),
    db: Session = Depends(get_db),
):
    """Put an archived appointment or lead back on the calendar."""
    ref = AppointmentRef.parse(appointment_id)
    return appointment_service.restore_appointment(db, scope, ref)
