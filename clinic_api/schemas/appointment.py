"""Pydantic schemas for the appointment/lead calendar view."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from clinic_api.core.errors import BadRequestError
from clinic_api.db.enums import AppointmentSource, AppointmentStatus

LEAD_ID_PREFIX = "lead-"
_POSITIVE_INT = re.compile(r"[1-9]\d*")


@dataclass(frozen=True)
class AppointmentRef:
    """
    Parsed composite id: ``"lead-<n>"`` addresses the legacy leads table,
    a bare integer addresses the appointments table.
    """

    kind: Literal["appointment", "lead"]
    id: int

    @property
    def is_lead(self) -> bool:
        return self.kind == "lead"

    @property
    def public_id(self) -> int | str:
        return f"{LEAD_ID_PREFIX}{self.id}" if self.is_lead else self.id

    @classmethod
    def parse(cls, raw: str) -> "AppointmentRef":
        value = (raw or "").strip()
        if value.startswith(LEAD_ID_PREFIX):
            numeric = value[len(LEAD_ID_PREFIX):]
            if not _POSITIVE_INT.fullmatch(numeric):
                raise BadRequestError("invalid lead id", code="INVALID_LEAD_ID")
            return cls(kind="lead", id=int(numeric))
        if not _POSITIVE_INT.fullmatch(value):
            raise BadRequestError("invalid appointment id", code="INVALID_APPOINTMENT_ID")
        return cls(kind="appointment", id=int(value))


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AppointmentRecord(CamelModel):
    """Normalized calendar entry built from either source table."""

    id: int | str
    clinic_id: int
    patient_id: int | None = None
    patient_name: str | None = None
    patient_phone: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: AppointmentStatus
    source: AppointmentSource
    notes: str | None = None
    doctor: str | None = None
    type: str | None = None
    insurance: str | None = None
    value: float | None = None
    # Raw pipeline values for lead-sourced entries; legacy metrics read these
    lead_status: str | None = None
    attendance_status: str | None = None


class AppointmentCreate(CamelModel):
    """
    New first-class appointment. ``patientName`` and ``appointmentDate`` are
    required; they are optional here so a missing one is a 400, not a 422.
    """

    patient_name: str | None = Field(None, max_length=255)
    appointment_date: datetime | None = None
    patient_phone: str | None = Field(None, max_length=50)
    patient_id: int | None = None
    end_time: datetime | None = None
    duration_minutes: int = Field(60, ge=1, le=24 * 60)
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    insurance: str = Field("Particular", max_length=100)
    notes: str | None = None
    doctor: str | None = Field(None, max_length=255)
    type: str | None = Field(None, max_length=50)
    value: float | None = Field(None, ge=0)
    clinic_id: int | None = None  # honored for super admins only


class AppointmentUpdate(CamelModel):
    """
    Partial update. Unknown keys are dropped; legacy aliases ``name``,
    ``phone`` and ``appointmentDate`` are accepted alongside canonical names.
    """

    start: datetime | None = None
    end: datetime | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None
    patient_name: str | None = Field(None, max_length=255)
    patient_phone: str | None = Field(None, max_length=50)
    insurance: str | None = Field(None, max_length=100)
    doctor: str | None = Field(None, max_length=255)
    type: str | None = Field(None, max_length=50)
    value: float | None = Field(None, ge=0)
    name: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    appointment_date: datetime | None = None

    @field_validator("start", "appointment_date", "status")
    @classmethod
    def _not_null(cls, value: object) -> object:
        # Omit the key to leave these unchanged; the columns cannot be blanked
        if value is None:
            raise ValueError("cannot be null")
        return value
