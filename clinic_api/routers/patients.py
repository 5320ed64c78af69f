"""Patients router - care flow status, clinical history and consultation finish."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clinic_api.core.deps import clinic_scope, get_db, get_tenant_context
from clinic_api.core.policies import ClinicScope
from clinic_api.schemas.auth import TenantContext
from clinic_api.schemas.patient import (
    FinishResult,
    PatientFinish,
    PatientHistory,
    PatientRead,
    PatientStatusUpdate,
)
from clinic_api.services import patient_service

router = APIRouter()


@router.patch("/{patient_id}/status", response_model=PatientRead)
def update_status(
    patient_id: int,
    data: PatientStatusUpdate,
    scope: ClinicScope = Depends(clinic_scope("patients")),
    db: Session = Depends(get_db),
):
    return patient_service.update_status(db, scope.require_clinic(), patient_id, data.status)


@router.get("/{patient_id}/history", response_model=PatientHistory)
def get_history(
    patient_id: int,
    scope: ClinicScope = Depends(clinic_scope("patients")),
    db: Session = Depends(get_db),
):
    return patient_service.get_history(db, scope.require_clinic(), patient_id)


@router.post("/{patient_id}/finish", response_model=FinishResult)
def finish_consultation(
    patient_id: int,
    data: PatientFinish,
    context: TenantContext = Depends(get_tenant_context),
    scope: ClinicScope = Depends(clinic_scope("patients")),
    db: Session = Depends(get_db),
):
    """Record anamnesis and prescription and close the consultation atomically."""
    return patient_service.finish_consultation(
        db, context, scope.require_clinic(), patient_id, data
    )
