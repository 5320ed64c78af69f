"""SQLAlchemy ORM models."""

from clinic_api.db.models.audit import AuditLog
from clinic_api.db.models.auth import User
from clinic_api.db.models.clinical import MedicalRecord, Prescription
from clinic_api.db.models.clinics import Clinic, ClinicSettings, UpgradeRequest
from clinic_api.db.models.finance import Transaction
from clinic_api.db.models.scheduling import Appointment, Lead, Patient

__all__ = [
    "Appointment",
    "AuditLog",
    "Clinic",
    "ClinicSettings",
    "Lead",
    "MedicalRecord",
    "Patient",
    "Prescription",
    "Transaction",
    "UpgradeRequest",
    "User",
]
