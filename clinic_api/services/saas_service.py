"""Platform admin service for tenant lifecycle and cross-clinic reporting.

Handles cross-tenant operations for super admins.
Do NOT reuse clinic-scoped services here - this service operates across all tenants.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_api.core.config import settings
from clinic_api.core.errors import ConflictError, ForbiddenError, NotFoundError
from clinic_api.core.security import hash_password
from clinic_api.db.enums import ClinicStatus, Role, UpgradeRequestStatus
from clinic_api.db.models import (
    Appointment,
    Clinic,
    ClinicSettings,
    Lead,
    MedicalRecord,
    Patient,
    Prescription,
    Transaction,
    UpgradeRequest,
    User,
)
from clinic_api.schemas.saas import (
    AnalyticsTotals,
    ClinicCreate,
    ClinicStatusUpdate,
    ClinicUpdate,
    PlanCount,
    PlatformAnalytics,
    PlatformStats,
    StatusCount,
    TopClinic,
    UpgradeRequestAdminRead,
    UpgradeRequestResolve,
)
from clinic_api.utils.csv_export import write_csv

logger = logging.getLogger(__name__)

TOP_CLINICS_LIMIT = 10

# Lifecycle: active ⇄ suspended ⇄ cancelled; trial and inactive are entry points
ALLOWED_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    ClinicStatus.TRIAL.value: frozenset(
        {ClinicStatus.ACTIVE.value, ClinicStatus.SUSPENDED.value, ClinicStatus.CANCELLED.value,
         ClinicStatus.INACTIVE.value}
    ),
    ClinicStatus.INACTIVE.value: frozenset(
        {ClinicStatus.ACTIVE.value, ClinicStatus.SUSPENDED.value, ClinicStatus.CANCELLED.value}
    ),
    ClinicStatus.ACTIVE.value: frozenset(
        {ClinicStatus.SUSPENDED.value, ClinicStatus.INACTIVE.value, ClinicStatus.CANCELLED.value}
    ),
    ClinicStatus.SUSPENDED.value: frozenset(
        {ClinicStatus.ACTIVE.value, ClinicStatus.CANCELLED.value}
    ),
    ClinicStatus.CANCELLED.value: frozenset({ClinicStatus.SUSPENDED.value}),
}

# Child tables removed with a clinic, leaf-first
CLINIC_OWNED_MODELS = (
    MedicalRecord,
    Prescription,
    Transaction,
    Appointment,
    Lead,
    Patient,
    ClinicSettings,
    UpgradeRequest,
    User,
)

ANALYTICS_CSV_HEADERS = [
    "id",
    "name",
    "slug",
    "status",
    "plan_tier",
    "user_count",
    "lead_count",
    "patient_count",
    "appointment_count",
    "created_at",
]


# =============================================================================
# Clinics
# =============================================================================

def list_clinics(db: Session) -> list[Clinic]:
    return list(
        db.execute(select(Clinic).order_by(Clinic.created_at.desc(), Clinic.id.desc())).scalars()
    )


def get_clinic(db: Session, clinic_id: int) -> Clinic:
    clinic = db.get(Clinic, clinic_id)
    if clinic is None:
        raise NotFoundError("clinic not found")
    return clinic


def create_clinic(db: Session, data: ClinicCreate) -> tuple[Clinic, User]:
    """
    Create a clinic and its first admin (owner) in one transaction.

    Raises:
        ConflictError: slug or admin username already taken
    """
    if db.execute(select(Clinic.id).where(Clinic.slug == data.slug)).first():
        raise ConflictError("slug already in use", code="SLUG_TAKEN")
    if db.execute(select(User.id).where(User.username == data.admin.username)).first():
        raise ConflictError("username already in use", code="USERNAME_TAKEN")

    clinic = Clinic(
        name=data.name.strip(),
        slug=data.slug,
        status=data.status.value,
        plan_tier=data.plan_tier.value,
        owner_email=data.owner_email or data.admin.email,
        owner_phone=data.owner_phone,
        trial_ends_at=data.trial_ends_at,
        subscription_started_at=datetime.now(),
    )
    if data.max_users is not None:
        clinic.max_users = data.max_users
    if data.max_patients is not None:
        clinic.max_patients = data.max_patients

    try:
        db.add(clinic)
        db.flush()
        admin = User(
            name=data.admin.name.strip(),
            username=data.admin.username.strip(),
            email=data.admin.email,
            password_hash=hash_password(data.admin.password),
            role=Role.CLINIC_ADMIN.value,
            clinic_id=clinic.id,
            is_owner=True,
        )
        db.add(admin)
        db.flush()
        clinic.owner_id = admin.id
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("slug or username already in use")

    db.refresh(clinic)
    db.refresh(admin)
    logger.info("Clinic created", extra={"clinic_id": clinic.id, "plan": clinic.plan_tier})
    return clinic, admin


def update_clinic(db: Session, clinic_id: int, data: ClinicUpdate) -> Clinic:
    clinic = get_clinic(db, clinic_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "plan_tier"):
            continue
        setattr(clinic, field, value.value if hasattr(value, "value") else value)
    clinic.updated_at = datetime.now()
    db.commit()
    db.refresh(clinic)
    return clinic


def update_clinic_status(db: Session, clinic_id: int, data: ClinicStatusUpdate) -> Clinic:
    """Apply a lifecycle transition; unchanged status is a no-op."""
    clinic = get_clinic(db, clinic_id)
    target = data.status.value
    if clinic.status == target:
        return clinic
    if target not in ALLOWED_STATUS_TRANSITIONS.get(clinic.status, frozenset()):
        raise ConflictError(
            f"cannot change status from {clinic.status} to {target}",
            code="INVALID_STATUS_TRANSITION",
        )
    previous = clinic.status
    clinic.status = target
    clinic.updated_at = datetime.now()
    if target == ClinicStatus.CANCELLED.value and clinic.subscription_ends_at is None:
        clinic.subscription_ends_at = datetime.now()
    db.commit()
    db.refresh(clinic)
    logger.info(
        "Clinic status changed",
        extra={"clinic_id": clinic.id, "from_status": previous, "to_status": target},
    )
    return clinic


def delete_clinic(db: Session, clinic_id: int) -> None:
    """Hard delete a clinic and every row it owns. The default clinic is protected."""
    if clinic_id == settings.DEFAULT_CLINIC_ID:
        raise ForbiddenError("the default clinic cannot be deleted", code="DEFAULT_CLINIC")
    clinic = get_clinic(db, clinic_id)
    try:
        for model in CLINIC_OWNED_MODELS:
            db.execute(delete(model).where(model.clinic_id == clinic_id))
        db.delete(clinic)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("clinic still has dependent records")
    logger.warning("Clinic deleted", extra={"clinic_id": clinic_id})


# =============================================================================
# Stats / analytics
# =============================================================================

def _count(db: Session, model, *criteria) -> int:
    return db.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one()


def get_stats(db: Session) -> PlatformStats:
    return PlatformStats(
        total_clinics=_count(db, Clinic),
        active_clinics=_count(db, Clinic, Clinic.status == ClinicStatus.ACTIVE.value),
        total_users=_count(db, User, User.role != Role.SUPER_ADMIN.value),
        total_leads=_count(db, Lead),
    )


def _per_clinic_counts(db: Session, model) -> dict[int, int]:
    return dict(
        db.execute(select(model.clinic_id, func.count()).group_by(model.clinic_id)).all()
    )


def get_analytics(db: Session) -> PlatformAnalytics:
    plans = db.execute(
        select(Clinic.plan_tier, func.count()).group_by(Clinic.plan_tier).order_by(Clinic.plan_tier)
    ).all()
    statuses = db.execute(
        select(Clinic.status, func.count()).group_by(Clinic.status).order_by(Clinic.status)
    ).all()

    lead_counts = _per_clinic_counts(db, Lead)
    user_counts = _per_clinic_counts(db, User)
    clinics = list_clinics(db)
    ranked = sorted(clinics, key=lambda c: (-lead_counts.get(c.id, 0), c.id))[:TOP_CLINICS_LIMIT]

    return PlatformAnalytics(
        totals=AnalyticsTotals(
            total_leads=_count(db, Lead),
            total_patients=_count(db, Patient),
            total_appointments=_count(db, Appointment),
        ),
        plans=[PlanCount(plan_tier=plan, count=count) for plan, count in plans],
        statuses=[StatusCount(status=status, count=count) for status, count in statuses],
        top_clinics=[
            TopClinic(
                id=clinic.id,
                name=clinic.name,
                slug=clinic.slug,
                plan_tier=clinic.plan_tier,
                status=clinic.status,
                lead_count=lead_counts.get(clinic.id, 0),
                user_count=user_counts.get(clinic.id, 0),
            )
            for clinic in ranked
        ],
    )


def export_analytics_csv(db: Session) -> str:
    user_counts = _per_clinic_counts(db, User)
    lead_counts = _per_clinic_counts(db, Lead)
    patient_counts = _per_clinic_counts(db, Patient)
    appointment_counts = _per_clinic_counts(db, Appointment)
    rows = (
        [
            clinic.id,
            clinic.name,
            clinic.slug,
            clinic.status,
            clinic.plan_tier,
            user_counts.get(clinic.id, 0),
            lead_counts.get(clinic.id, 0),
            patient_counts.get(clinic.id, 0),
            appointment_counts.get(clinic.id, 0),
            clinic.created_at,
        ]
        for clinic in list_clinics(db)
    )
    return write_csv(ANALYTICS_CSV_HEADERS, rows)


# =============================================================================
# Upgrade requests
# =============================================================================

def _upgrade_read(request: UpgradeRequest, clinic: Clinic | None) -> UpgradeRequestAdminRead:
    return UpgradeRequestAdminRead(
        id=request.id,
        clinic_id=request.clinic_id,
        clinic_name=clinic.name if clinic else None,
        clinic_slug=clinic.slug if clinic else None,
        current_plan=request.current_plan,
        requested_plan=request.requested_plan,
        status=request.status,
        notes=request.notes,
        created_at=request.created_at,
        resolved_at=request.resolved_at,
    )


def list_upgrade_requests(
    db: Session, status: UpgradeRequestStatus | None = None
) -> list[UpgradeRequestAdminRead]:
    stmt = select(UpgradeRequest, Clinic).outerjoin(Clinic, Clinic.id == UpgradeRequest.clinic_id)
    if status is not None:
        stmt = stmt.where(UpgradeRequest.status == status.value)
    rows = db.execute(stmt.order_by(UpgradeRequest.created_at.desc(), UpgradeRequest.id.desc()))
    return [_upgrade_read(request, clinic) for request, clinic in rows]


def resolve_upgrade_request(
    db: Session, request_id: int, data: UpgradeRequestResolve
) -> UpgradeRequestAdminRead:
    """
    pending → approved (overwrites the clinic's plan_tier) or pending → rejected.

    Raises:
        NotFoundError: unknown request
        ConflictError: request already resolved, or target status is pending
    """
    request = db.get(UpgradeRequest, request_id)
    if request is None:
        raise NotFoundError("upgrade request not found")
    if request.status != UpgradeRequestStatus.PENDING.value:
        raise ConflictError("upgrade request already resolved", code="ALREADY_RESOLVED")
    if data.status == UpgradeRequestStatus.PENDING:
        raise ConflictError("upgrade request must be approved or rejected")

    clinic = db.get(Clinic, request.clinic_id)
    request.status = data.status.value
    request.resolved_at = datetime.now()
    if data.notes is not None:
        request.notes = data.notes
    if data.status == UpgradeRequestStatus.APPROVED and clinic is not None:
        clinic.plan_tier = request.requested_plan
        clinic.updated_at = datetime.now()
    db.commit()
    db.refresh(request)
    logger.info(
        "Upgrade request resolved",
        extra={"clinic_id": request.clinic_id, "resolution": request.status},
    )
    return _upgrade_read(request, clinic)
