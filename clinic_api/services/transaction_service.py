"""Transaction service - per-clinic income/expense ledger.

All functions take the caller's own clinic id. Totals only ever count
``paid`` rows as realized; ``pending`` rows are reported separately and
``cancelled``/``refunded`` rows are excluded from every aggregate.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clinic_api.core.errors import BadRequestError, ConflictError, NotFoundError
from clinic_api.db.enums import TransactionStatus, TransactionType
from clinic_api.db.models import Patient, Transaction
from clinic_api.schemas.financial import (
    CategoryTotal,
    FinancialDashboard,
    FinancialReport,
    PaymentMethodTotal,
    ReportCategoryRow,
    ReportPaymentRow,
    ReportSummary,
    TransactionCreate,
    TransactionList,
    TransactionPay,
    TransactionRead,
    TransactionSummary,
    TransactionUpdate,
)
from clinic_api.utils.datetime_parsing import day_bounds, month_bounds, to_naive

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
EXCLUDED_STATUSES = (TransactionStatus.CANCELLED.value, TransactionStatus.REFUNDED.value)


def _effective_date(txn: Transaction) -> datetime:
    """When a transaction counts: paid date, else due date, else creation."""
    if txn.paid_at is not None:
        return txn.paid_at
    if txn.due_date is not None:
        return datetime.combine(txn.due_date, datetime.min.time())
    return txn.created_at


def _in_range(txn: Transaction, start: datetime | None, end: datetime | None) -> bool:
    moment = _effective_date(txn)
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True


def _check_patient(db: Session, clinic_id: int, patient_id: int | None) -> None:
    if patient_id is None:
        return
    patient = db.get(Patient, patient_id)
    if patient is None or patient.clinic_id != clinic_id:
        raise NotFoundError("patient not found")


# =============================================================================
# CRUD
# =============================================================================

def list_transactions(
    db: Session,
    clinic_id: int,
    *,
    type: TransactionType | None = None,
    status: TransactionStatus | None = None,
    category: str | None = None,
    payment_method: str | None = None,
    patient_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> TransactionList:
    """Newest first. The date range applies to the effective date."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    stmt = select(Transaction).where(Transaction.clinic_id == clinic_id)
    if type is not None:
        stmt = stmt.where(Transaction.type == type.value)
    if status is not None:
        stmt = stmt.where(Transaction.status == status.value)
    if category:
        stmt = stmt.where(func.lower(Transaction.category) == category.strip().lower())
    if payment_method:
        stmt = stmt.where(Transaction.payment_method == payment_method.strip().lower())
    if patient_id is not None:
        stmt = stmt.where(Transaction.patient_id == patient_id)

    rows = db.execute(
        stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
    ).scalars().all()
    if start is not None or end is not None:
        rows = [txn for txn in rows if _in_range(txn, start, end)]

    page = rows[offset:offset + limit]
    return TransactionList(
        items=[TransactionRead.model_validate(txn) for txn in page],
        total=len(rows),
        limit=limit,
        offset=offset,
    )


def get_transaction(db: Session, clinic_id: int, transaction_id: int) -> Transaction:
    txn = db.execute(
        select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.clinic_id == clinic_id,
        )
    ).scalar_one_or_none()
    if txn is None:
        raise NotFoundError("transaction not found")
    return txn


def create_transaction(db: Session, clinic_id: int, data: TransactionCreate) -> Transaction:
    _check_patient(db, clinic_id, data.patient_id)

    paid_at = to_naive(data.paid_at) if data.paid_at else None
    if data.status == TransactionStatus.PAID and paid_at is None:
        paid_at = datetime.now()

    txn = Transaction(
        clinic_id=clinic_id,
        patient_id=data.patient_id,
        appointment_id=data.appointment_id,
        type=data.type.value,
        amount=data.amount,
        category=data.category,
        payment_method=data.payment_method.value if data.payment_method else None,
        status=data.status.value,
        description=data.description,
        due_date=data.due_date,
        paid_at=paid_at,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    logger.info(
        "Transaction created",
        extra={"clinic_id": clinic_id, "transaction_id": txn.id, "type": txn.type},
    )
    return txn


def update_transaction(
    db: Session, clinic_id: int, transaction_id: int, data: TransactionUpdate
) -> Transaction:
    txn = get_transaction(db, clinic_id, transaction_id)
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise BadRequestError("at least one field required")
    if "patient_id" in changes:
        _check_patient(db, clinic_id, changes["patient_id"])

    for field, value in changes.items():
        if field in ("type", "status", "payment_method") and value is not None:
            value = value.value
        elif field == "paid_at" and value is not None:
            value = to_naive(value)
        setattr(txn, field, value)

    if txn.status == TransactionStatus.PAID.value and txn.paid_at is None:
        txn.paid_at = datetime.now()
    txn.updated_at = datetime.now()
    db.commit()
    db.refresh(txn)
    return txn


def delete_transaction(db: Session, clinic_id: int, transaction_id: int) -> None:
    txn = get_transaction(db, clinic_id, transaction_id)
    db.delete(txn)
    db.commit()


def pay_transaction(
    db: Session, clinic_id: int, transaction_id: int, data: TransactionPay
) -> Transaction:
    txn = get_transaction(db, clinic_id, transaction_id)
    if txn.status != TransactionStatus.PENDING.value:
        raise ConflictError(
            f"only pending transactions can be paid (current: {txn.status})",
            code="INVALID_TRANSACTION_STATUS",
        )
    txn.status = TransactionStatus.PAID.value
    txn.paid_at = to_naive(data.paid_at) if data.paid_at else datetime.now()
    if data.payment_method is not None:
        txn.payment_method = data.payment_method.value
    txn.updated_at = datetime.now()
    db.commit()
    db.refresh(txn)
    return txn


def cancel_transaction(db: Session, clinic_id: int, transaction_id: int) -> Transaction:
    txn = get_transaction(db, clinic_id, transaction_id)
    if txn.status == TransactionStatus.CANCELLED.value:
        raise ConflictError("transaction already cancelled", code="INVALID_TRANSACTION_STATUS")
    txn.status = TransactionStatus.CANCELLED.value
    txn.updated_at = datetime.now()
    db.commit()
    db.refresh(txn)
    return txn


# =============================================================================
# Aggregates
# =============================================================================

def _active_transactions(db: Session, clinic_id: int) -> list[Transaction]:
    return list(
        db.execute(
            select(Transaction).where(
                Transaction.clinic_id == clinic_id,
                Transaction.status.not_in(EXCLUDED_STATUSES),
            )
        ).scalars()
    )


def _sum(transactions, txn_type: TransactionType, status: TransactionStatus) -> float:
    return round(
        sum(
            txn.amount
            for txn in transactions
            if txn.type == txn_type.value and txn.status == status.value
        ),
        2,
    )


def get_summary(
    db: Session,
    clinic_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> TransactionSummary:
    transactions = [
        txn for txn in _active_transactions(db, clinic_id) if _in_range(txn, start, end)
    ]
    total_income = _sum(transactions, TransactionType.INCOME, TransactionStatus.PAID)
    total_expense = _sum(transactions, TransactionType.EXPENSE, TransactionStatus.PAID)

    by_category: dict[str | None, list[float]] = defaultdict(list)
    by_method: dict[str | None, list[float]] = defaultdict(list)
    for txn in transactions:
        if txn.status != TransactionStatus.PAID.value:
            continue
        by_category[txn.category].append(txn.amount)
        by_method[txn.payment_method].append(txn.amount)

    return TransactionSummary(
        total_income=total_income,
        total_expense=total_expense,
        balance=round(total_income - total_expense, 2),
        pending_income=_sum(transactions, TransactionType.INCOME, TransactionStatus.PENDING),
        pending_expense=_sum(transactions, TransactionType.EXPENSE, TransactionStatus.PENDING),
        by_category=sorted(
            (
                CategoryTotal(category=key, total=round(sum(values), 2), count=len(values))
                for key, values in by_category.items()
            ),
            key=lambda row: row.total,
            reverse=True,
        ),
        by_payment_method=sorted(
            (
                PaymentMethodTotal(payment_method=key, total=round(sum(values), 2), count=len(values))
                for key, values in by_method.items()
            ),
            key=lambda row: row.total,
            reverse=True,
        ),
    )


def get_report(
    db: Session,
    clinic_id: int,
    start: datetime | None,
    end: datetime | None,
) -> FinancialReport:
    """Period report over paid and pending rows, bounded by effective date."""
    if start is None or end is None:
        raise BadRequestError("startDate and endDate are required")
    if end < start:
        raise BadRequestError("endDate must not be before startDate")

    transactions = [
        txn for txn in _active_transactions(db, clinic_id) if _in_range(txn, start, end)
    ]
    income = round(sum(t.amount for t in transactions if t.type == TransactionType.INCOME.value), 2)
    expense = round(sum(t.amount for t in transactions if t.type == TransactionType.EXPENSE.value), 2)

    categories: dict[tuple[str | None, str], float] = defaultdict(float)
    methods: dict[str | None, float] = defaultdict(float)
    for txn in transactions:
        categories[(txn.category, txn.type)] += txn.amount
        if txn.type == TransactionType.INCOME.value:
            methods[txn.payment_method] += txn.amount

    return FinancialReport(
        start_date=start.date(),
        end_date=end.date(),
        summary=ReportSummary(
            total_income=income,
            total_expense=expense,
            balance=round(income - expense, 2),
        ),
        by_category=[
            ReportCategoryRow(category=category, type=txn_type, amount=round(amount, 2))
            for (category, txn_type), amount in sorted(
                categories.items(), key=lambda item: item[1], reverse=True
            )
        ],
        by_payment_method=[
            ReportPaymentRow(payment_method=method, amount=round(amount, 2))
            for method, amount in sorted(methods.items(), key=lambda item: item[1], reverse=True)
        ],
    )


def _paid_total(
    db: Session,
    clinic_id: int,
    txn_type: TransactionType,
    start: datetime,
    end: datetime,
) -> float:
    total = db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.clinic_id == clinic_id,
            Transaction.type == txn_type.value,
            Transaction.status == TransactionStatus.PAID.value,
            Transaction.paid_at >= start,
            Transaction.paid_at < end,
        )
    ).scalar_one()
    return round(float(total), 2)


def get_dashboard(db: Session, clinic_id: int, today: date | None = None) -> FinancialDashboard:
    """Today's paid balance plus this month's paid income and expense."""
    today = today or date.today()
    day_start, day_end = day_bounds(today)
    month_start, month_end = month_bounds(today)

    daily_income = _paid_total(db, clinic_id, TransactionType.INCOME, day_start, day_end)
    daily_expense = _paid_total(db, clinic_id, TransactionType.EXPENSE, day_start, day_end)
    return FinancialDashboard(
        daily_balance=round(daily_income - daily_expense, 2),
        monthly_income=_paid_total(db, clinic_id, TransactionType.INCOME, month_start, month_end),
        monthly_expense=_paid_total(db, clinic_id, TransactionType.EXPENSE, month_start, month_end),
    )
