import datetime as dt
from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from uuid import UUID
from typing import Optional

from debt_tracker.core.security import get_current_owner
from debt_tracker.database import get_session
from debt_tracker.models.enums import TransactionStatus, TransactionType
from debt_tracker.schemas.transaction import TransactionCreate, TransactionRead, TransactionUpdateLimited
from debt_tracker.services import ledger
from debt_tracker.services.access import get_owned_debt, get_owned_transaction

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=TransactionRead, status_code=status.HTTP_201_CREATED, include_in_schema=False)
def create_transaction(
    transaction_data: TransactionCreate,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    return ledger.create_manual_entry(session, user_id, transaction_data)


@router.get("", response_model=dict)
@router.get("/", response_model=dict, include_in_schema=False)
def list_transactions(
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
    type: Optional[TransactionType] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    debt_id: Optional[int] = Query(None, alias="debtId"),
    start_date: Optional[dt.datetime] = Query(None, alias="startDate"),
    end_date: Optional[dt.datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: str = Query("transaction_date", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
):
    transactions, total = ledger.list_transactions(
        session,
        user_id,
        type=type,
        status=status_filter,
        debt_id=debt_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    return {
        "items": [TransactionRead.model_validate(t).model_dump(mode="json") for t in transactions],
        "count": len(transactions),
        "total": total,
        "page": page,
        "page_size": page_size,
        "totalPages": max(1, (total + page_size - 1) // page_size),
    }


# Rutas fijas antes de /{transaction_id}
@router.get("/analytics", response_model=dict)
def get_transaction_analytics(
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
    start_date: Optional[dt.datetime] = Query(None, alias="startDate"),
    end_date: Optional[dt.datetime] = Query(None, alias="endDate"),
):
    return ledger.transaction_analytics(session, user_id, start_date, end_date)


@router.get("/debt/{debt_id}/summary", response_model=dict)
def get_debt_transaction_summary(
    debt_id: int,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    debt = get_owned_debt(session, debt_id, user_id)
    summary = ledger.debt_transaction_summary(session, debt)
    return {
        "debt_id": debt.id,
        "bank_name": debt.bank_name,
        "summary": [
            {
                **group,
                "transactions": [
                    TransactionRead.model_validate(t).model_dump(mode="json") for t in group["transactions"]
                ],
            }
            for group in summary
        ],
    }


@router.get("/monthly/{year}/{month}", response_model=dict)
def get_monthly_transactions(
    year: int,
    month: int,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    result = ledger.monthly_summary(session, user_id, year, month)
    result["transactions"] = [
        TransactionRead.model_validate(t).model_dump(mode="json") for t in result["transactions"]
    ]
    return result


@router.get("/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: int,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    return get_owned_transaction(session, transaction_id, user_id)


@router.put("/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdateLimited,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    transaction = get_owned_transaction(session, transaction_id, user_id)
    return ledger.update_transaction(session, transaction, data)


@router.delete("/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    transaction = get_owned_transaction(session, transaction_id, user_id)
    ledger.delete_transaction(session, transaction)
    return {"message": "Movimiento eliminado correctamente"}
