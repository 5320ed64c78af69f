"""Clinic (tenant) schemas: settings documents, info, plans and audit logs."""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from clinic_api.db.enums import ClinicStatus, PlanTier, Role, UpgradeRequestStatus

HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}){1,2}$"
TIME_PATTERN = r"^(?:[01]\d|2[0-3]):[0-5]\d$"
WEEKDAYS = ("Dom", "Seg", "Ter", "Qua", "Qui", "Sex", "Sab")


class SettingsSection(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# =============================================================================
# Settings documents (stored as JSON text, validated on write)
# =============================================================================

class IdentitySettings(SettingsSection):
    name: str = Field("", max_length=255)
    phone: str = Field("", max_length=50)
    address: str = Field("", max_length=500)
    primary_color: str = Field("#06b6d4", pattern=HEX_COLOR_PATTERN)
    logo: str | None = None


class HoursSettings(SettingsSection):
    opening: str = Field("08:00", pattern=TIME_PATTERN)
    closing: str = Field("18:00", pattern=TIME_PATTERN)
    lunch_start: str = ""
    lunch_end: str = ""
    working_days: list[str] = Field(default_factory=lambda: ["Seg", "Ter", "Qua", "Qui", "Sex"])

    @field_validator("lunch_start", "lunch_end")
    @classmethod
    def _optional_time(cls, value: str) -> str:
        if value and not re.fullmatch(TIME_PATTERN, value):
            raise ValueError("must be HH:MM")
        return value

    @field_validator("working_days")
    @classmethod
    def _known_days(cls, value: list[str]) -> list[str]:
        unknown = [day for day in value if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"unknown weekday(s): {', '.join(unknown)}")
        return value


class ChatbotSettings(SettingsSection):
    greeting: str = ""
    away_message: str = ""
    instructions: str = ""


class ClinicSettingsRead(SettingsSection):
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    hours: HoursSettings = Field(default_factory=HoursSettings)
    insurance_plans: list[str] = Field(default_factory=list)
    chatbot: ChatbotSettings = Field(default_factory=ChatbotSettings)


class ClinicSettingsUpdate(SettingsSection):
    """Full replacement; every section is required."""

    identity: IdentitySettings
    hours: HoursSettings
    insurance_plans: list[str]
    chatbot: ChatbotSettings


# =============================================================================
# Clinic info / stats
# =============================================================================

class TrialInfo(BaseModel):
    ends_at: datetime
    days_left: int
    is_expiring_soon: bool


class ClinicInfo(BaseModel):
    id: int
    name: str
    slug: str
    status: ClinicStatus
    plan_tier: PlanTier
    owner_id: int | None = None
    owner_name: str | None = None
    owner_email: str | None = None
    max_users: int
    max_patients: int
    total_users: int
    total_leads: int
    total_patients: int
    user_progress: int
    patient_progress: int
    near_user_limit: bool
    near_patient_limit: bool
    trial: TrialInfo | None = None
    subscription_started_at: datetime | None = None
    subscription_ends_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClinicInfoUser(BaseModel):
    id: int
    name: str
    role: Role
    is_owner: bool


class ClinicInfoResponse(BaseModel):
    clinic: ClinicInfo
    user: ClinicInfoUser


class ClinicStats(BaseModel):
    total_users: int
    total_leads: int
    total_patients: int
    upcoming_appointments: int
    leads_by_status: dict[str, int]


# =============================================================================
# Upgrade requests
# =============================================================================

class UpgradeRequestCreate(BaseModel):
    requested_plan: PlanTier
    notes: str | None = Field(None, max_length=1000)


class UpgradeRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    clinic_id: int
    current_plan: str
    requested_plan: str
    status: UpgradeRequestStatus
    notes: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None


# =============================================================================
# Audit logs
# =============================================================================

class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    clinic_id: int | None = None
    user_id: int | None = None
    user_role: str | None = None
    action: str
    path: str | None = None
    method: str | None = None
    status_code: int | None = None
    ip_address: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime

    @field_validator("details", mode="before")
    @classmethod
    def _parse_details(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return {"raw": value}
        return value


class AuditLogList(BaseModel):
    items: list[AuditLogRead]
    total: int
    limit: int
    offset: int
