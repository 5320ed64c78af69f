"""Clinic service - tenant-facing settings, usage info and plan requests.

Every function takes the caller's own clinic id; none of these operations
span tenants.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timedelta

from pydantic import BaseModel, ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clinic_api.core.errors import ConflictError, NotFoundError
from clinic_api.db.enums import ClinicStatus, UpgradeRequestStatus
from clinic_api.db.models import (
    Appointment,
    Clinic,
    ClinicSettings,
    Lead,
    Patient,
    UpgradeRequest,
    User,
)
from clinic_api.schemas.auth import TenantContext
from clinic_api.schemas.clinic import (
    ChatbotSettings,
    ClinicInfo,
    ClinicInfoResponse,
    ClinicInfoUser,
    ClinicSettingsRead,
    ClinicSettingsUpdate,
    ClinicStats,
    HoursSettings,
    IdentitySettings,
    TrialInfo,
    UpgradeRequestCreate,
)

logger = logging.getLogger(__name__)

NEAR_LIMIT_PERCENT = 80
TRIAL_EXPIRING_DAYS = 7
UPCOMING_WINDOW_DAYS = 7


def get_clinic(db: Session, clinic_id: int) -> Clinic:
    clinic = db.get(Clinic, clinic_id)
    if clinic is None:
        raise NotFoundError("clinic not found")
    return clinic


# =============================================================================
# Settings
# =============================================================================

def _load_section(raw: str | None, model: type[BaseModel], default: BaseModel) -> BaseModel:
    """Parse a stored JSON section; unreadable data falls back to defaults."""
    if not raw:
        return default
    try:
        return model.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError):
        logger.warning("Stored clinic setting unreadable, using defaults: %s", model.__name__)
        return default


def _load_insurance_plans(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        plans = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [str(plan) for plan in plans] if isinstance(plans, list) else []


def get_settings(db: Session, clinic_id: int) -> ClinicSettingsRead:
    row = db.execute(
        select(ClinicSettings).where(ClinicSettings.clinic_id == clinic_id)
    ).scalar_one_or_none()
    if row is None:
        return ClinicSettingsRead()
    return ClinicSettingsRead(
        identity=_load_section(row.identity, IdentitySettings, IdentitySettings()),
        hours=_load_section(row.hours, HoursSettings, HoursSettings()),
        insurance_plans=_load_insurance_plans(row.insurance_plans),
        chatbot=_load_section(row.chatbot, ChatbotSettings, ChatbotSettings()),
    )


def save_settings(
    db: Session, clinic_id: int, data: ClinicSettingsUpdate
) -> tuple[ClinicSettingsRead, bool]:
    """Upsert all four sections. Returns ``(settings, created)``."""
    get_clinic(db, clinic_id)
    row = db.execute(
        select(ClinicSettings).where(ClinicSettings.clinic_id == clinic_id)
    ).scalar_one_or_none()
    created = row is None
    if created:
        row = ClinicSettings(clinic_id=clinic_id)
        db.add(row)

    row.identity = data.identity.model_dump_json(by_alias=True)
    row.hours = data.hours.model_dump_json(by_alias=True)
    row.insurance_plans = json.dumps(data.insurance_plans)
    row.chatbot = data.chatbot.model_dump_json(by_alias=True)
    row.updated_at = datetime.now()
    db.commit()

    return (
        ClinicSettingsRead(
            identity=data.identity,
            hours=data.hours,
            insurance_plans=data.insurance_plans,
            chatbot=data.chatbot,
        ),
        created,
    )


# =============================================================================
# Info / stats
# =============================================================================

def _count(db: Session, model, clinic_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(model).where(model.clinic_id == clinic_id)
    ).scalar_one()


def _progress(used: int, limit: int) -> float:
    return used / limit * 100 if limit > 0 else 0


def get_info(db: Session, context: TenantContext, clinic_id: int) -> ClinicInfoResponse:
    """Clinic profile with usage counters, plan-limit progress and trial status."""
    clinic = get_clinic(db, clinic_id)
    owner = db.get(User, clinic.owner_id) if clinic.owner_id else None

    total_users = _count(db, User, clinic_id)
    total_leads = _count(db, Lead, clinic_id)
    total_patients = _count(db, Patient, clinic_id)
    user_progress = _progress(total_users, clinic.max_users)
    patient_progress = _progress(total_patients, clinic.max_patients)

    trial = None
    if clinic.status == ClinicStatus.TRIAL.value and clinic.trial_ends_at:
        days_left = math.ceil((clinic.trial_ends_at - datetime.now()).total_seconds() / 86400)
        trial = TrialInfo(
            ends_at=clinic.trial_ends_at,
            days_left=days_left,
            is_expiring_soon=days_left <= TRIAL_EXPIRING_DAYS,
        )

    return ClinicInfoResponse(
        clinic=ClinicInfo(
            id=clinic.id,
            name=clinic.name,
            slug=clinic.slug,
            status=clinic.status,
            plan_tier=clinic.plan_tier,
            owner_id=clinic.owner_id,
            owner_name=owner.name if owner else None,
            owner_email=clinic.owner_email,
            max_users=clinic.max_users,
            max_patients=clinic.max_patients,
            total_users=total_users,
            total_leads=total_leads,
            total_patients=total_patients,
            user_progress=round(user_progress),
            patient_progress=round(patient_progress),
            near_user_limit=user_progress >= NEAR_LIMIT_PERCENT,
            near_patient_limit=patient_progress >= NEAR_LIMIT_PERCENT,
            trial=trial,
            subscription_started_at=clinic.subscription_started_at,
            subscription_ends_at=clinic.subscription_ends_at,
            created_at=clinic.created_at,
            updated_at=clinic.updated_at,
        ),
        user=ClinicInfoUser(
            id=context.user_id,
            name=context.name,
            role=context.role,
            is_owner=context.is_owner,
        ),
    )


def get_stats(db: Session, clinic_id: int, now: datetime | None = None) -> ClinicStats:
    get_clinic(db, clinic_id)
    now = now or datetime.now()
    window_end = now + timedelta(days=UPCOMING_WINDOW_DAYS)

    start_expr = func.coalesce(Appointment.start_time, Appointment.appointment_date)
    upcoming_appointments = db.execute(
        select(func.count()).select_from(Appointment).where(
            Appointment.clinic_id == clinic_id,
            start_expr >= now,
            start_expr <= window_end,
        )
    ).scalar_one()
    upcoming_leads = db.execute(
        select(func.count()).select_from(Lead).where(
            Lead.clinic_id == clinic_id,
            Lead.appointment_date >= now,
            Lead.appointment_date <= window_end,
        )
    ).scalar_one()
    leads_by_status = dict(
        db.execute(
            select(Lead.status, func.count())
            .where(Lead.clinic_id == clinic_id)
            .group_by(Lead.status)
        ).all()
    )

    return ClinicStats(
        total_users=_count(db, User, clinic_id),
        total_leads=_count(db, Lead, clinic_id),
        total_patients=_count(db, Patient, clinic_id),
        upcoming_appointments=upcoming_appointments + upcoming_leads,
        leads_by_status=leads_by_status,
    )


# =============================================================================
# Upgrade requests
# =============================================================================

def create_upgrade_request(
    db: Session, clinic_id: int, data: UpgradeRequestCreate
) -> UpgradeRequest:
    clinic = get_clinic(db, clinic_id)
    if clinic.plan_tier == data.requested_plan.value:
        raise ConflictError("clinic is already on the requested plan")

    pending = db.execute(
        select(UpgradeRequest).where(
            UpgradeRequest.clinic_id == clinic_id,
            UpgradeRequest.status == UpgradeRequestStatus.PENDING.value,
        )
    ).scalars().first()
    if pending is not None:
        raise ConflictError("an upgrade request is already pending")

    request = UpgradeRequest(
        clinic_id=clinic_id,
        current_plan=clinic.plan_tier,
        requested_plan=data.requested_plan.value,
        status=UpgradeRequestStatus.PENDING.value,
        notes=data.notes,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info("Upgrade requested", extra={"clinic_id": clinic_id, "plan": request.requested_plan})
    return request
