"""Patient care service - kanban status, clinical history and consultation finish."""

from __future__ import annotations

import json
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.core.errors import InternalError, NotFoundError
from clinic_api.db.enums import PatientStatus
from clinic_api.db.models import MedicalRecord, Patient, Prescription
from clinic_api.schemas.auth import TenantContext
from clinic_api.schemas.patient import FinishResult, HistoryEntry, PatientFinish, PatientHistory

logger = logging.getLogger(__name__)

# Usual kanban flow; other moves are allowed but logged
EXPECTED_TRANSITIONS: dict[PatientStatus, set[PatientStatus]] = {
    PatientStatus.WAITING: {PatientStatus.TRIAGE, PatientStatus.CONSULTATION},
    PatientStatus.TRIAGE: {PatientStatus.WAITING, PatientStatus.CONSULTATION},
    PatientStatus.CONSULTATION: {PatientStatus.TRIAGE, PatientStatus.FINISHED},
    PatientStatus.FINISHED: {PatientStatus.WAITING},
}


def get_patient(db: Session, clinic_id: int, patient_id: int) -> Patient:
    patient = db.execute(
        select(Patient).where(Patient.id == patient_id, Patient.clinic_id == clinic_id)
    ).scalar_one_or_none()
    if patient is None:
        raise NotFoundError("patient not found")
    return patient


def update_status(
    db: Session, clinic_id: int, patient_id: int, status: PatientStatus
) -> Patient:
    patient = get_patient(db, clinic_id, patient_id)
    current = PatientStatus(patient.status)
    if status != current and status not in EXPECTED_TRANSITIONS.get(current, set()):
        logger.warning(
            "Unusual patient status transition %s -> %s",
            current.value,
            status.value,
            extra={"clinic_id": clinic_id, "patient_id": patient_id},
        )

    now = datetime.now()
    patient.status = status.value
    if status == PatientStatus.CONSULTATION and patient.start_time is None:
        patient.start_time = now
    if status == PatientStatus.FINISHED:
        patient.end_time = now
    patient.updated_at = now
    db.commit()
    db.refresh(patient)
    return patient


def _load_medications(raw: str | None) -> list:
    try:
        value = json.loads(raw) if raw else []
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


def get_history(db: Session, clinic_id: int, patient_id: int) -> PatientHistory:
    """Medical records and prescriptions of one patient, oldest first."""
    get_patient(db, clinic_id, patient_id)

    records = db.execute(
        select(MedicalRecord).where(
            MedicalRecord.clinic_id == clinic_id,
            MedicalRecord.patient_id == patient_id,
            MedicalRecord.deleted_at.is_(None),
        )
    ).scalars().all()
    prescriptions = db.execute(
        select(Prescription).where(
            Prescription.clinic_id == clinic_id,
            Prescription.patient_id == patient_id,
            Prescription.deleted_at.is_(None),
        )
    ).scalars().all()

    history = [
        HistoryEntry(
            type="medical_record",
            id=record.id,
            created_at=record.created_at,
            doctor_id=record.doctor_id,
            anamnesis_text=record.anamnesis_text,
            diagnosis=record.diagnosis,
        )
        for record in records
    ] + [
        HistoryEntry(
            type="prescription",
            id=prescription.id,
            created_at=prescription.created_at,
            doctor_id=prescription.doctor_id,
            medications=_load_medications(prescription.medications_json),
            pdf_url=prescription.pdf_url,
        )
        for prescription in prescriptions
    ]
    history.sort(key=lambda entry: entry.created_at)
    return PatientHistory(patient_id=patient_id, history=history)


def finish_consultation(
    db: Session,
    context: TenantContext,
    clinic_id: int,
    patient_id: int,
    data: PatientFinish,
) -> FinishResult:
    """
    Close a consultation atomically.

    Writes the medical record, the prescription and the patient's move to
    ``finished`` in one transaction; any failure rolls all three back.
    """
    patient = get_patient(db, clinic_id, patient_id)
    medications = [item.model_dump(exclude_none=True) for item in data.medications]
    now = datetime.now()

    try:
        record = MedicalRecord(
            clinic_id=clinic_id,
            patient_id=patient_id,
            anamnesis_text=data.anamnesis_text or None,
            diagnosis=data.diagnosis or None,
            doctor_id=context.user_id,
        )
        prescription = Prescription(
            clinic_id=clinic_id,
            patient_id=patient_id,
            medications_json=json.dumps(medications),
            doctor_id=context.user_id,
        )
        db.add_all([record, prescription])
        patient.status = PatientStatus.FINISHED.value
        patient.end_time = now
        patient.updated_at = now
        db.flush()
        result = FinishResult(
            medical_record_id=record.id,
            prescription_id=prescription.id,
            patient_id=patient_id,
            status=PatientStatus.FINISHED,
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to finish consultation",
            extra={"clinic_id": clinic_id, "patient_id": patient_id},
        )
        raise InternalError("failed to finish consultation")

    logger.info(
        "Consultation finished",
        extra={"clinic_id": clinic_id, "patient_id": patient_id, "medical_record_id": result.medical_record_id},
    )
    return result
