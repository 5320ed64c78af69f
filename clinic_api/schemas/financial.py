"""Financial transaction schemas."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinic_api.db.enums import (
    PaymentMethod,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)

MAX_AMOUNT = 999_999_999
_CATEGORY_LOOKUP = {category.value.lower(): category.value for category in TransactionCategory}


def normalize_category(value: str | None) -> str | None:
    """Canonical casing for known categories; other labels pass through trimmed."""
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    return _CATEGORY_LOOKUP.get(cleaned.lower(), cleaned)


class _TransactionFields(BaseModel):
    @field_validator("payment_method", mode="before", check_fields=False)
    @classmethod
    def _lower_method(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("category", mode="before", check_fields=False)
    @classmethod
    def _normalize_category(cls, value):
        return normalize_category(value) if isinstance(value, str) else value


class TransactionCreate(_TransactionFields):
    type: TransactionType
    amount: float = Field(..., gt=0, le=MAX_AMOUNT)
    category: str | None = Field(None, max_length=50)
    payment_method: PaymentMethod | None = None
    status: TransactionStatus = TransactionStatus.PENDING
    description: str | None = Field(None, max_length=1000)
    patient_id: int | None = None
    appointment_id: int | None = None
    due_date: date | None = None
    paid_at: datetime | None = None


class TransactionUpdate(_TransactionFields):
    type: TransactionType | None = None
    amount: float | None = Field(None, gt=0, le=MAX_AMOUNT)
    category: str | None = Field(None, max_length=50)
    payment_method: PaymentMethod | None = None
    status: TransactionStatus | None = None
    description: str | None = Field(None, max_length=1000)
    patient_id: int | None = None
    appointment_id: int | None = None
    due_date: date | None = None
    paid_at: datetime | None = None


class TransactionPay(_TransactionFields):
    paid_at: datetime | None = None
    payment_method: PaymentMethod | None = None


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    clinic_id: int
    patient_id: int | None = None
    appointment_id: int | None = None
    type: TransactionType
    amount: float
    category: str | None = None
    payment_method: str | None = None
    status: TransactionStatus
    description: str | None = None
    due_date: date | None = None
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class TransactionList(BaseModel):
    items: list[TransactionRead]
    total: int
    limit: int
    offset: int


class CategoryTotal(BaseModel):
    category: str | None
    total: float
    count: int


class PaymentMethodTotal(BaseModel):
    payment_method: str | None
    total: float
    count: int


class TransactionSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_income: float = Field(serialization_alias="totalIncome")
    total_expense: float = Field(serialization_alias="totalExpense")
    balance: float
    pending_income: float = Field(serialization_alias="pendingIncome")
    pending_expense: float = Field(serialization_alias="pendingExpense")
    by_category: list[CategoryTotal] = Field(serialization_alias="byCategory")
    by_payment_method: list[PaymentMethodTotal] = Field(serialization_alias="byPaymentMethod")


class ReportCategoryRow(BaseModel):
    category: str | None
    type: TransactionType
    amount: float


class ReportPaymentRow(BaseModel):
    payment_method: str | None
    amount: float


class ReportSummary(BaseModel):
    total_income: float
    total_expense: float
    balance: float


class FinancialReport(BaseModel):
    start_date: date
    end_date: date
    summary: ReportSummary
    by_category: list[ReportCategoryRow]
    by_payment_method: list[ReportPaymentRow]


class FinancialDashboard(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    daily_balance: float = Field(serialization_alias="dailyBalance")
    monthly_income: float = Field(serialization_alias="monthlyIncome")
    monthly_expense: float = Field(serialization_alias="monthlyExpense")
