"""Appointment service - calendar view over appointments and legacy leads.

Handles:
- Listing the union of first-class appointments and dated leads
- Single-record lookup, partial update and delete routed by composite id
- Appointment creation with default duration/status/insurance
- Archived listing and restore

Every query is scoped by the ClinicScope resolved from the isolation policy;
a row owned by another clinic is reported exactly like a missing row.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.core.errors import BadRequestError, ConflictError, InternalError, NotFoundError
from clinic_api.core.policies import ClinicScope
from clinic_api.db.enums import (
    AppointmentSource,
    AppointmentStatus,
    AttendanceStatus,
    LeadStatus,
)
from clinic_api.db.models import Appointment, Lead, Patient
from clinic_api.schemas.appointment import (
    AppointmentCreate,
    AppointmentRecord,
    AppointmentRef,
    AppointmentUpdate,
)
from clinic_api.services import lead_service
from clinic_api.services.metrics_service import parse_financial_data
from clinic_api.utils.datetime_parsing import to_naive

logger = logging.getLogger(__name__)

LEAD_DURATION_MINUTES = 30
LEGACY_APPOINTMENT_DURATION_MINUTES = 30
DEFAULT_INSURANCE = "Particular"

LEAD_STATUS_MAP: dict[str, AppointmentStatus] = {
    LeadStatus.NEW.value: AppointmentStatus.SCHEDULED,
    LeadStatus.SCHEDULED.value: AppointmentStatus.SCHEDULED,
    LeadStatus.IN_SERVICE.value: AppointmentStatus.CONFIRMED,
    LeadStatus.FINISHED.value: AppointmentStatus.COMPLETED,
    LeadStatus.ARCHIVED.value: AppointmentStatus.ARCHIVED,
}

# Attendance outcome overrides the pipeline status
ATTENDANCE_STATUS_MAP: dict[str, AppointmentStatus] = {
    AttendanceStatus.MISSED.value: AppointmentStatus.NO_SHOW,
    AttendanceStatus.CANCELLED.value: AppointmentStatus.CANCELLED,
}

# Update allow-list: request field -> appointment columns it writes.
# Legacy aliases come first so a canonical field in the same payload wins.
APPOINTMENT_UPDATE_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("name", ("patient_name",)),
    ("phone", ("patient_phone",)),
    ("appointment_date", ("start_time", "appointment_date")),
    ("start", ("start_time", "appointment_date")),
    ("end", ("end_time",)),
    ("status", ("status",)),
    ("notes", ("notes",)),
    ("patient_name", ("patient_name",)),
    ("patient_phone", ("patient_phone",)),
    ("insurance", ("insurance",)),
    ("doctor", ("doctor",)),
    ("type", ("type",)),
    ("value", ("value",)),
)
LEAD_START_FIELDS = ("start", "appointment_date")


# =============================================================================
# Normalization
# =============================================================================

def _appointment_status(raw: str | None) -> AppointmentStatus:
    if raw in AppointmentStatus._value2member_map_:
        return AppointmentStatus(raw)
    return LEAD_STATUS_MAP.get(raw or "", AppointmentStatus.SCHEDULED)


def lead_status(lead: Lead) -> AppointmentStatus:
    """Map legacy lead pipeline + attendance onto the normalized status set."""
    if lead.attendance_status in ATTENDANCE_STATUS_MAP:
        return ATTENDANCE_STATUS_MAP[lead.attendance_status]
    return LEAD_STATUS_MAP.get(lead.status, AppointmentStatus.SCHEDULED)


def appointment_start(appt: Appointment) -> datetime | None:
    return appt.start_time or appt.appointment_date


def appointment_end(appt: Appointment) -> datetime | None:
    start = appointment_start(appt)
    if appt.end_time is not None:
        return appt.end_time
    if start is None:
        return None
    return start + timedelta(minutes=appt.duration_minutes or LEGACY_APPOINTMENT_DURATION_MINUTES)


def appointment_to_record(
    appt: Appointment,
    patient_name: str | None = None,
    patient_phone: str | None = None,
) -> AppointmentRecord:
    return AppointmentRecord(
        id=appt.id,
        clinic_id=appt.clinic_id,
        patient_id=appt.patient_id,
        patient_name=appt.patient_name or patient_name,
        patient_phone=appt.patient_phone or patient_phone,
        start_time=appointment_start(appt),
        end_time=appointment_end(appt),
        status=_appointment_status(appt.status),
        source=AppointmentSource.APPOINTMENT,
        notes=appt.notes,
        doctor=appt.doctor,
        type=appt.type,
        insurance=appt.insurance,
        value=appt.value,
    )


def lead_to_record(lead: Lead) -> AppointmentRecord:
    financial = parse_financial_data(lead.notes)
    return AppointmentRecord(
        id=AppointmentRef(kind="lead", id=lead.id).public_id,
        clinic_id=lead.clinic_id,
        patient_name=lead.name,
        patient_phone=lead.phone,
        start_time=lead.appointment_date,
        end_time=lead.appointment_date + timedelta(minutes=LEAD_DURATION_MINUTES),
        status=lead_status(lead),
        source=AppointmentSource.LEAD,
        notes=lead.notes,
        doctor=lead.doctor,
        type=lead.appointment_type or lead.type,
        insurance=financial.get("paymentType") if financial else None,
        value=lead.value,
        lead_status=lead.status,
        attendance_status=lead.attendance_status,
    )


# =============================================================================
# Queries
# =============================================================================

def _appointment_query(scope: ClinicScope):
    stmt = select(Appointment, Patient.name, Patient.phone).outerjoin(
        Patient, Patient.id == Appointment.patient_id
    )
    if scope.clinic_id is not None:
        stmt = stmt.where(Appointment.clinic_id == scope.clinic_id)
    return stmt


def _lead_query(scope: ClinicScope):
    stmt = select(Lead)
    if scope.clinic_id is not None:
        stmt = stmt.where(Lead.clinic_id == scope.clinic_id)
    return stmt


def _list_appointment_rows(
    db: Session,
    scope: ClinicScope,
    start: datetime | None,
    end: datetime | None,
) -> list[AppointmentRecord]:
    start_expr = func.coalesce(Appointment.start_time, Appointment.appointment_date)
    stmt = _appointment_query(scope).where(start_expr.is_not(None))
    if end is not None:
        stmt = stmt.where(start_expr <= end)
    if start is not None:
        # Rows without a stored end are checked against the derived end below
        stmt = stmt.where(or_(Appointment.end_time >= start, Appointment.end_time.is_(None)))

    records = []
    for appt, patient_name, patient_phone in db.execute(stmt.order_by(start_expr, Appointment.id)):
        record = appointment_to_record(appt, patient_name, patient_phone)
        if start is not None and record.end_time < start:
            continue
        records.append(record)
    return records


def _list_lead_rows(
    db: Session,
    scope: ClinicScope,
    start: datetime | None,
    end: datetime | None,
) -> list[AppointmentRecord]:
    stmt = _lead_query(scope).where(Lead.appointment_date.is_not(None))
    if start is not None:
        stmt = stmt.where(Lead.appointment_date >= start)
    if end is not None:
        stmt = stmt.where(Lead.appointment_date <= end)
    leads = db.execute(stmt.order_by(Lead.appointment_date, Lead.id)).scalars().all()
    return [lead_to_record(lead) for lead in leads]


def list_appointments(
    db: Session,
    scope: ClinicScope,
    start: datetime | None = None,
    end: datetime | None = None,
) -> tuple[list[AppointmentRecord], bool]:
    """
    Union of appointments and dated leads, ordered by start time.

    Returns ``(records, degraded)``. When one source fails the other's rows
    are still returned with ``degraded=True``; when both fail, InternalError.
    Sorting is stable, so appointments precede leads at identical start times.
    """
    records: list[AppointmentRecord] = []
    failures = 0
    for source, loader in (("appointments", _list_appointment_rows), ("leads", _list_lead_rows)):
        try:
            records.extend(loader(db, scope, start, end))
        except SQLAlchemyError:
            db.rollback()
            failures += 1
            logger.exception("Calendar query failed for %s", source)

    if failures == 2:
        raise InternalError("failed to load appointments")
    records.sort(key=lambda record: record.start_time)
    return records, failures > 0


def _get_appointment_row(
    db: Session, scope: ClinicScope, appointment_id: int
) -> tuple[Appointment, str | None, str | None]:
    row = db.execute(
        _appointment_query(scope).where(Appointment.id == appointment_id)
    ).first()
    if row is None:
        raise NotFoundError("appointment not found")
    return row[0], row[1], row[2]


def _get_lead_row(db: Session, scope: ClinicScope, lead_id: int) -> Lead:
    lead = db.execute(_lead_query(scope).where(Lead.id == lead_id)).scalar_one_or_none()
    if lead is None:
        raise NotFoundError("appointment not found")
    return lead


def get_appointment(db: Session, scope: ClinicScope, ref: AppointmentRef) -> AppointmentRecord:
    if ref.is_lead:
        lead = _get_lead_row(db, scope, ref.id)
        if lead.appointment_date is None:
            raise NotFoundError("appointment not found")
        return lead_to_record(lead)
    appt, patient_name, patient_phone = _get_appointment_row(db, scope, ref.id)
    return appointment_to_record(appt, patient_name, patient_phone)


# =============================================================================
# Writes
# =============================================================================

def _resolve_values(data: AppointmentUpdate) -> dict[str, object]:
    """Translate a partial update through the allow-list into column values."""
    provided = data.model_fields_set
    values: dict[str, object] = {}
    for field_name, columns in APPOINTMENT_UPDATE_FIELDS:
        if field_name not in provided:
            continue
        value = getattr(data, field_name)
        if isinstance(value, datetime):
            value = to_naive(value)
        elif isinstance(value, AppointmentStatus):
            value = value.value
        for column in columns:
            values[column] = value
    return values


def update_appointment(
    db: Session,
    scope: ClinicScope,
    ref: AppointmentRef,
    data: AppointmentUpdate,
) -> AppointmentRecord:
    """
    Apply a partial update to the table the id routes to.

    Leads only accept a new appointment date (from ``start`` or
    ``appointmentDate``); other fields are ignored for them.
    """
    values = _resolve_values(data)
    if not values:
        raise BadRequestError("at least one field required")

    if ref.is_lead:
        lead = _get_lead_row(db, scope, ref.id)
        new_start = next(
            (getattr(data, name) for name in LEAD_START_FIELDS if name in data.model_fields_set),
            None,
        )
        if new_start is not None:
            lead.appointment_date = to_naive(new_start)
            lead.updated_at = datetime.now()
            db.commit()
            db.refresh(lead)
            lead_service.invalidate_leads_cache(lead.clinic_id)
        if lead.appointment_date is None:
            raise NotFoundError("appointment not found")
        return lead_to_record(lead)

    appt, patient_name, patient_phone = _get_appointment_row(db, scope, ref.id)
    for column, value in values.items():
        setattr(appt, column, value)

    if (
        "start_time" in values
        and "end_time" not in values
        and appt.start_time is not None
        and appt.duration_minutes
    ):
        appt.end_time = appt.start_time + timedelta(minutes=appt.duration_minutes)
    start, end = appointment_start(appt), appointment_end(appt)
    if start is not None and end is not None and end < start:
        db.rollback()
        raise BadRequestError("end must not be before start")

    appt.updated_at = datetime.now()
    db.commit()
    db.refresh(appt)
    return appointment_to_record(appt, patient_name, patient_phone)


def delete_appointment(db: Session, scope: ClinicScope, ref: AppointmentRef) -> None:
    """Hard delete from whichever table the id routes to."""
    if ref.is_lead:
        lead = _get_lead_row(db, scope, ref.id)
        clinic_id = lead.clinic_id
        db.delete(lead)
        db.commit()
        lead_service.invalidate_leads_cache(clinic_id)
        return

    appt, _, _ = _get_appointment_row(db, scope, ref.id)
    db.delete(appt)
    db.commit()


def create_appointment(
    db: Session,
    scope: ClinicScope,
    data: AppointmentCreate,
) -> AppointmentRecord:
    """
    Create a first-class appointment.

    ``endTime`` defaults to start + ``durationMinutes``. A super admin (no
    clinic in scope) must name the target clinic with ``clinicId``.
    """
    clinic_id = data.clinic_id if scope.cross_tenant else scope.require_clinic()
    if clinic_id is None:
        raise BadRequestError("clinicId required")

    patient_name = (data.patient_name or "").strip()
    if not patient_name or data.appointment_date is None:
        raise BadRequestError("patientName and appointmentDate are required")

    start = to_naive(data.appointment_date)
    end = to_naive(data.end_time) if data.end_time else start + timedelta(
        minutes=data.duration_minutes
    )
    if end < start:
        raise BadRequestError("end must not be before start")

    if data.patient_id is not None:
        patient = db.execute(
            select(Patient).where(Patient.id == data.patient_id, Patient.clinic_id == clinic_id)
        ).scalar_one_or_none()
        if patient is None:
            raise NotFoundError("patient not found")

    appt = Appointment(
        clinic_id=clinic_id,
        patient_id=data.patient_id,
        patient_name=patient_name,
        patient_phone=data.patient_phone,
        appointment_date=start,
        start_time=start,
        end_time=end,
        duration_minutes=data.duration_minutes,
        status=data.status.value,
        notes=data.notes,
        doctor=data.doctor,
        type=data.type,
        insurance=data.insurance or DEFAULT_INSURANCE,
        value=data.value,
    )
    db.add(appt)
    db.commit()
    db.refresh(appt)
    return appointment_to_record(appt)


# =============================================================================
# Archive
# =============================================================================

def list_archived(db: Session, scope: ClinicScope) -> list[AppointmentRecord]:
    appointments = db.execute(
        _appointment_query(scope).where(Appointment.status == AppointmentStatus.ARCHIVED.value)
    ).all()
    leads = db.execute(
        _lead_query(scope).where(
            Lead.status == LeadStatus.ARCHIVED.value,
            Lead.appointment_date.is_not(None),
        )
    ).scalars().all()

    records = [
        appointment_to_record(appt, name, phone)
        for appt, name, phone in appointments
        if appointment_start(appt) is not None
    ]
    records.extend(lead_to_record(lead) for lead in leads)
    records.sort(key=lambda record: record.start_time, reverse=True)
    return records


def restore_appointment(db: Session, scope: ClinicScope, ref: AppointmentRef) -> AppointmentRecord:
    """Move an archived record back onto the active calendar."""
    if ref.is_lead:
        lead = _get_lead_row(db, scope, ref.id)
        if lead.status != LeadStatus.ARCHIVED.value:
            raise ConflictError("appointment is not archived")
        lead.status = LeadStatus.SCHEDULED.value
        lead.archive_reason = None
        lead.status_updated_at = datetime.now()
        db.commit()
        db.refresh(lead)
        lead_service.invalidate_leads_cache(lead.clinic_id)
        if lead.appointment_date is None:
            raise NotFoundError("appointment not found")
        return lead_to_record(lead)

    appt, patient_name, patient_phone = _get_appointment_row(db, scope, ref.id)
    if appt.status != AppointmentStatus.ARCHIVED.value:
        raise ConflictError("appointment is not archived")
    appt.status = AppointmentStatus.SCHEDULED.value
    appt.updated_at = datetime.now()
    db.commit()
    db.refresh(appt)
    return appointment_to_record(appt, patient_name, patient_phone)
