from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from uuid import UUID
from typing import List, Optional

from debt_tracker.core.security import get_current_owner
from debt_tracker.database import get_session
from debt_tracker.schemas.debt import DebtClose, DebtCreate, DebtPayment, DebtRead, DebtUpdate
from debt_tracker.schemas.transaction import TransactionRead
from debt_tracker.services import debts as debt_service
from debt_tracker.services.payments import make_payment

router = APIRouter(prefix="/debts", tags=["debts"])


@router.post("", response_model=DebtRead, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=DebtRead, status_code=status.HTTP_201_CREATED, include_in_schema=False)
def create_debt(
    debt_data: DebtCreate,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    return debt_service.create_debt(session, user_id, debt_data)


@router.get("", response_model=dict)
@router.get("/", response_model=dict, include_in_schema=False)
def get_debts(
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    bank_name: Optional[str] = Query(None, alias="bankName"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
):
    result = debt_service.list_debts(
        session,
        user_id,
        status=status_filter,
        bank_name=bank_name,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    total = result["total"]

    return {
        "items": [DebtRead.model_validate(d).model_dump(mode="json") for d in result["items"]],
        "count": len(result["items"]),
        "total": total,
        "page": page,
        "page_size": page_size,
        "totalPages": max(1, (total + page_size - 1) // page_size),
        "stats": result["stats"],
    }


# Debe ir antes de /{debt_id}
@router.get("/overdue", response_model=dict)
def get_overdue_debts(
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    debts = debt_service.list_overdue_debts(session, user_id)
    return {
        "count": len(debts),
        "items": [DebtRead.model_validate(d).model_dump(mode="json") for d in debts],
    }


@router.get("/{debt_id}", response_model=DebtRead)
def get_debt(
    debt_id: int,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    return debt_service.get_debt(session, debt_id, user_id)


@router.put("/{debt_id}", response_model=DebtRead)
def update_debt(
    debt_id: int,
    debt_data: DebtUpdate,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    return debt_service.update_debt(session, debt_id, user_id, debt_data)


@router.delete("/{debt_id}")
def delete_debt(
    debt_id: int,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    debt_service.delete_debt(session, debt_id, user_id)
    return {"message": "Deuda eliminada correctamente"}


@router.post("/{debt_id}/payment", response_model=dict)
def pay_installment(
    debt_id: int,
    payment: DebtPayment,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    debt = make_payment(
        session,
        debt_id,
        user_id,
        payment.payment_schedule_index,
        payment.amount,
        bank_reference=payment.bank_reference,
        payment_method=payment.payment_method,
        description=payment.description,
    )
    return {
        "message": "Pago registrado correctamente",
        "debt": DebtRead.model_validate(debt).model_dump(mode="json"),
    }


@router.post("/{debt_id}/close", response_model=DebtRead)
def close_debt(
    debt_id: int,
    data: DebtClose,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    return debt_service.close_debt(session, debt_id, user_id, data.remarks)


@router.get("/{debt_id}/summary", response_model=dict)
def get_debt_summary(
    debt_id: int,
    user_id: UUID = Depends(get_current_owner),
    session: Session = Depends(get_session),
):
    summary = debt_service.debt_summary(session, debt_id, user_id)
    return {
        "debt": DebtRead.model_validate(summary["debt"]).model_dump(mode="json"),
        "analytics": summary["analytics"],
        "transactions": [
            {**group, "transactions": _dump_transactions(group["transactions"])}
            for group in summary["transactions"]
        ],
    }


def _dump_transactions(transactions) -> List[dict]:
    return [TransactionRead.model_validate(t).model_dump(mode="json") for t in transactions]
