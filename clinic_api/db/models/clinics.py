"""Tenant (clinic) models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from clinic_api.db.base import Base
from clinic_api.db.enums import ClinicStatus, PlanTier, UpgradeRequestStatus


class Clinic(Base):
    """
    A tenant. Every clinic-owned row carries ``clinic_id`` pointing here.

    Lifecycle changes go through status transitions only; deletion is a hard
    delete blocked for the default clinic.
    """

    __tablename__ = "clinics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClinicStatus.ACTIVE.value,
        server_default=text(f"'{ClinicStatus.ACTIVE.value}'"),
    )
    plan_tier: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlanTier.BASIC.value,
        server_default=text(f"'{PlanTier.BASIC.value}'"),
    )
    owner_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    owner_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    max_users: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default=text("5"))
    max_patients: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1000, server_default=text("1000")
    )
    trial_ends_at: Mapped[datetime | None] = mapped_column(nullable=True)
    subscription_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    subscription_ends_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), onupdate=datetime.now, nullable=False
    )


class ClinicSettings(Base):
    """Per-clinic configuration. Each section is a JSON document stored as text."""

    __tablename__ = "clinic_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[int] = mapped_column(
        ForeignKey("clinics.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    identity: Mapped[str | None] = mapped_column(Text, nullable=True)
    hours: Mapped[str | None] = mapped_column(Text, nullable=True)
    insurance_plans: Mapped[str | None] = mapped_column(Text, nullable=True)
    chatbot: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), onupdate=datetime.now, nullable=False
    )


class UpgradeRequest(Base):
    """Plan change requested by a clinic; resolved by a super admin."""

    __tablename__ = "upgrade_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[int] = mapped_column(
        ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    current_plan: Mapped[str] = mapped_column(String(20), nullable=False)
    requested_plan: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UpgradeRequestStatus.PENDING.value,
        server_default=text(f"'{UpgradeRequestStatus.PENDING.value}'"),
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=datetime.now, server_default=func.now(), nullable=False
    )
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
