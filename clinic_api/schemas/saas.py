"""Platform (super admin) schemas for tenant lifecycle and analytics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from clinic_api.db.enums import ClinicStatus, PlanTier, UpgradeRequestStatus

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class ClinicAdminCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6, max_length=128)
    email: str | None = Field(None, max_length=255)


class ClinicCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=2, max_length=100, pattern=SLUG_PATTERN)
    status: ClinicStatus = ClinicStatus.ACTIVE
    plan_tier: PlanTier = PlanTier.BASIC
    owner_email: str | None = Field(None, max_length=255)
    owner_phone: str | None = Field(None, max_length=50)
    max_users: int | None = Field(None, ge=1)
    max_patients: int | None = Field(None, ge=1)
    trial_ends_at: datetime | None = None
    admin: ClinicAdminCreate


class ClinicUpdate(BaseModel):
    """Profile fields only; lifecycle changes go through the status endpoint."""

    name: str | None = Field(None, min_length=1, max_length=255)
    plan_tier: PlanTier | None = None
    owner_email: str | None = Field(None, max_length=255)
    owner_phone: str | None = Field(None, max_length=50)
    max_users: int | None = Field(None, ge=1)
    max_patients: int | None = Field(None, ge=1)
    trial_ends_at: datetime | None = None
    subscription_started_at: datetime | None = None
    subscription_ends_at: datetime | None = None


class ClinicStatusUpdate(BaseModel):
    status: ClinicStatus


class ClinicRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    status: ClinicStatus
    plan_tier: PlanTier
    owner_id: int | None = None
    owner_email: str | None = None
    owner_phone: str | None = None
    max_users: int
    max_patients: int
    trial_ends_at: datetime | None = None
    subscription_started_at: datetime | None = None
    subscription_ends_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ClinicCreated(BaseModel):
    clinic: ClinicRead
    admin_user_id: int


class PlatformStats(BaseModel):
    total_clinics: int
    active_clinics: int
    total_users: int
    total_leads: int


class AnalyticsTotals(BaseModel):
    total_leads: int
    total_patients: int
    total_appointments: int


class PlanCount(BaseModel):
    plan_tier: str
    count: int


class StatusCount(BaseModel):
    status: str
    count: int


class TopClinic(BaseModel):
    id: int
    name: str
    slug: str
    plan_tier: str
    status: str
    lead_count: int
    user_count: int


class PlatformAnalytics(BaseModel):
    totals: AnalyticsTotals
    plans: list[PlanCount]
    statuses: list[StatusCount]
    top_clinics: list[TopClinic]


class UpgradeRequestResolve(BaseModel):
    status: UpgradeRequestStatus
    notes: str | None = Field(None, max_length=1000)


class UpgradeRequestAdminRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    clinic_id: int
    clinic_name: str | None = None
    clinic_slug: str | None = None
    current_plan: str
    requested_plan: str
    status: UpgradeRequestStatus
    notes: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None
