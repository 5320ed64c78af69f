"""Financial router - transactions ledger, summaries, reports and dashboard.

Always bound to the caller's own clinic.
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from clinic_api.core.deps import clinic_scope, get_db
from clinic_api.core.policies import ClinicScope
from clinic_api.db.enums import TransactionStatus, TransactionType
from clinic_api.schemas.financial import (
    FinancialDashboard,
    FinancialReport,
    TransactionCreate,
    TransactionList,
    TransactionPay,
    TransactionRead,
    TransactionSummary,
    TransactionUpdate,
)
from clinic_api.services import transaction_service
from clinic_api.utils.datetime_parsing import parse_query_range

router = APIRouter()

scope_dependency = clinic_scope("financial")


@router.get("/transactions", response_model=TransactionList)
def list_transactions(
    type: TransactionType | None = Query(None),
    status: TransactionStatus | None = Query(None),
    category: str | None = Query(None, max_length=50),
    payment_method: str | None = Query(None, max_length=20),
    patient_id: int | None = Query(None),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    limit: int = Query(transaction_service.DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    """Filtered, paginated ledger (page size capped at 100)."""
    start, end = parse_query_range(start_date, end_date)
    return transaction_service.list_transactions(
        db,
        scope.require_clinic(),
        type=type,
        status=status,
        category=category,
        payment_method=payment_method,
        patient_id=patient_id,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )


@router.post("/transactions", response_model=TransactionRead, status_code=201)
def create_transaction(
    data: TransactionCreate,
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    return transaction_service.create_transaction(db, scope.require_clinic(), data)


@router.get("/transactions/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: int,
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    return transaction_service.get_transaction(db, scope.require_clinic(), transaction_id)


@router.patch("/transactions/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    return transaction_service.update_transaction(db, scope.require_clinic(), transaction_id, data)


@router.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    transaction_service.delete_transaction(db, scope.require_clinic(), transaction_id)
    return Response(status_code=204)


@router.patch("/transactions/{transaction_id}/pay", response_model=TransactionRead)
def pay_transaction(
    transaction_id: int,
    data: TransactionPay | None = None,
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    """Mark a pending transaction as paid (defaults to now)."""
    return transaction_service.pay_transaction(
        db, scope.require_clinic(), transaction_id, data or TransactionPay()
    )


@router.patch("/transactions/{transaction_id}/cancel", response_model=TransactionRead)
def cancel_transaction(
    transaction_id: int,
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    return transaction_service.cancel_transaction(db, scope.require_clinic(), transaction_id)


@router.get("/summary", response_model=TransactionSummary)
def get_summary(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    start, end = parse_query_range(start_date, end_date)
    return transaction_service.get_summary(db, scope.require_clinic(), start, end)


@router.get("/report", response_model=FinancialReport)
def get_report(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    """Period report; both bounds are required."""
    start, end = parse_query_range(start_date, end_date)
    return transaction_service.get_report(db, scope.require_clinic(), start, end)


@router.get("/dashboard", response_model=FinancialDashboard)
def get_dashboard(
    scope: ClinicScope = Depends(scope_dependency),
    db: Session = Depends(get_db),
):
    """Today's paid balance and this month's paid income/expense."""
    return transaction_service.get_dashboard(db, scope.require_clinic())
