"""Scheduling models: first-class appointments, legacy leads and patients."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from clinic_api.db.base import Base
from clinic_api.db.enums import AppointmentStatus, LeadStatus, PatientStatus


class Lead(Base):
    """
    Legacy intake record. A lead with ``appointment_date`` set is an implicit
    appointment and shows up on the calendar as ``lead-<id>``.
    """

    __tablename__ = "leads"
    __table_args__ = (Index("idx_leads_clinic_date", "clinic_id", "appointment_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[int] = mapped_column(
        ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LeadStatus.NEW.value,
        server_default=text(f"'{LeadStatus.NEW.value}'"),
    )
    appointment_date: Mapped[datetime | None] = mapped_column(nullable=True)
    doctor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    appointment_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    value: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    attendance_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    archive_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), onupdate=datetime.now, nullable=False
    )
    status_updated_at: Mapped[datetime | None] = mapped_column(nullable=True)


class Patient(Base):
    """Patient in the clinic's care flow (waiting → triage → consultation → finished)."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[int] = mapped_column(
        ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cpf: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PatientStatus.WAITING.value,
        server_default=text(f"'{PatientStatus.WAITING.value}'"),
    )
    start_time: Mapped[datetime | None] = mapped_column(nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), onupdate=datetime.now, nullable=False
    )


class Appointment(Base):
    """
    First-class appointment.

    ``patient_name``/``patient_phone`` are denormalized copies; when absent the
    linked patient row supplies them. ``appointment_date`` mirrors
    ``start_time`` for older readers.
    """

    __tablename__ = "appointments"
    __table_args__ = (Index("idx_appointments_clinic_start", "clinic_id", "start_time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[int] = mapped_column(
        ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[int | None] = mapped_column(
        ForeignKey("patients.id", ondelete="SET NULL"), nullable=True
    )
    doctor_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    patient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    patient_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    appointment_date: Mapped[datetime | None] = mapped_column(nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value,
        server_default=text(f"'{AppointmentStatus.SCHEDULED.value}'"),
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    doctor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    insurance: Mapped[str | None] = mapped_column(String(100), nullable=True)
    value: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), onupdate=datetime.now, nullable=False
    )
