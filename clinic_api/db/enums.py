"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    User roles with increasing privilege levels.

    - STAFF: Front desk / clinical staff of one clinic
    - CLINIC_ADMIN: Clinic administrator (settings, financial, upgrade requests)
    - SUPER_ADMIN: Platform operator, may act across all clinics
    """
    STAFF = "staff"
    CLINIC_ADMIN = "clinic_admin"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class ClinicStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


# Statuses whose users may still log in
CLINIC_LOGIN_STATUSES = frozenset({ClinicStatus.ACTIVE.value, ClinicStatus.TRIAL.value})


class PlanTier(str, Enum):
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class UpgradeRequestStatus(str, Enum):
    """pending → approved | rejected; terminal once resolved."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AppointmentStatus(str, Enum):
    """Normalized status shared by appointments and legacy leads."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    ARCHIVED = "archived"


class AppointmentSource(str, Enum):
    APPOINTMENT = "appointment"
    LEAD = "lead"


class LeadStatus(str, Enum):
    """Legacy lead pipeline statuses (Portuguese values kept for stored rows)."""
    NEW = "novo"
    IN_SERVICE = "em_atendimento"
    SCHEDULED = "agendado"
    FINISHED = "finalizado"
    ARCHIVED = "archived"


class AttendanceStatus(str, Enum):
    ATTENDED = "compareceu"
    MISSED = "faltou"
    RESCHEDULED = "remarcou"
    CANCELLED = "cancelou"


class PatientStatus(str, Enum):
    WAITING = "waiting"
    TRIAGE = "triage"
    CONSULTATION = "consultation"
    FINISHED = "finished"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    PIX = "pix"
    CREDIT = "credit"
    DEBIT = "debit"
    CASH = "cash"
    BOLETO = "boleto"
    TRANSFER = "transfer"


class TransactionCategory(str, Enum):
    """Suggested categories; free text up to 50 chars is also accepted."""
    CONSULTATION = "Consulta"
    PROCEDURE = "Procedimento"
    RENT = "Aluguel"
    SUPPLIES = "Material"
    OTHER = "Outros"
