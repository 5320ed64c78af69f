"""Patient care schemas (kanban status, clinical history, consultation finish)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from clinic_api.db.enums import PatientStatus


class PatientStatusUpdate(BaseModel):
    status: PatientStatus


class PatientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    clinic_id: int
    name: str
    phone: str | None = None
    status: PatientStatus
    start_time: datetime | None = None
    end_time: datetime | None = None
    updated_at: datetime


class Medication(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, max_length=255)
    dosage: str | None = Field(None, max_length=255)
    instructions: str | None = Field(None, max_length=1000)


class PatientFinish(BaseModel):
    """Body of ``POST /api/patients/{id}/finish`` (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    anamnesis_text: str | None = Field(None, max_length=20000)
    diagnosis: str | None = Field(None, max_length=5000)
    medications: list[Medication] = Field(default_factory=list)


class FinishResult(BaseModel):
    medical_record_id: int
    prescription_id: int
    patient_id: int
    status: PatientStatus


class HistoryEntry(BaseModel):
    type: Literal["medical_record", "prescription"]
    id: int
    created_at: datetime
    doctor_id: int | None = None
    anamnesis_text: str | None = None
    diagnosis: str | None = None
    medications: list[dict[str, Any]] | None = None
    pdf_url: str | None = None

    @field_validator("medications", mode="before")
    @classmethod
    def _only_lists(cls, value):
        return value if value is None or isinstance(value, list) else []


class PatientHistory(BaseModel):
    patient_id: int
    history: list[HistoryEntry]
