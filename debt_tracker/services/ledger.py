import datetime as dt
import logging
from collections import defaultdict
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy import extract, func
from sqlmodel import Session, select

from debt_tracker.core.errors import (
    AlreadyPaidError,
    ConflictError,
    ImmutableFieldError,
    NotFoundError,
    ValidationError,
)
from debt_tracker.database import atomic
from debt_tracker.models.debt import Debt
from debt_tracker.models.enums import InstallmentStatus, PaymentMethod, TransactionStatus, TransactionType
from debt_tracker.models.transaction import Transaction
from debt_tracker.schemas.transaction import TransactionCreate, TransactionUpdateLimited
from debt_tracker.services.access import get_owned_debt
from debt_tracker.utils.dates import epoch_ms, month_bounds, normalize_dt, utcnow
from debt_tracker.utils.money import to_money

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "transaction_date": Transaction.transaction_date,
    "created_at": Transaction.created_at,
    "amount": Transaction.amount,
    "type": Transaction.type,
    "status": Transaction.status,
}


def append_entry(
    session: Session,
    *,
    debt: Debt,
    user_id: UUID,
    type: TransactionType,
    amount,
    description: Optional[str] = None,
    transaction_date: Optional[dt.datetime] = None,
    payment_schedule_index: Optional[int] = None,
    bank_reference: Optional[str] = None,
    payment_method: Optional[PaymentMethod] = None,
    status: TransactionStatus = TransactionStatus.completed,
) -> Transaction:
    """Agrega un asiento al libro de la deuda.

    No hace commit: el asiento queda dentro de la unidad atómica de quien
    llama, junto con el cambio de la deuda.
    """
    if type == TransactionType.payment and (payment_schedule_index is None or payment_schedule_index < 0):
        raise ValidationError("El índice de la cuota es obligatorio en los pagos.")

    amount = to_money(amount)
    if amount < 0:
        raise ValidationError("El monto del movimiento no puede ser negativo.")

    entry = Transaction(
        user_id=user_id,
        type=type,
        amount=amount,
        description=description,
        transaction_date=normalize_dt(transaction_date),
        payment_schedule_index=payment_schedule_index,
        bank_reference=bank_reference or f"{type.value.upper()}-{epoch_ms()}",
        payment_method=payment_method or PaymentMethod.bank_transfer,
        status=status,
    )
    entry.debt = debt
    session.add(entry)
    return entry


def _check_manual_payment(debt: Debt, index: Optional[int], status: TransactionStatus):
    if index is None or index < 0:
        raise ValidationError("El índice de la cuota es obligatorio en los pagos.")
    if index >= len(debt.payment_schedule):
        raise NotFoundError("Índice de cuota inválido")
    if debt.payment_schedule[index].status == InstallmentStatus.paid:
        raise AlreadyPaidError("La cuota ya fue pagada")
    # Los pagos completados solo nacen de make_payment, que actualiza la deuda
    if status == TransactionStatus.completed:
        raise ConflictError("Los pagos completados se registran con el endpoint de pago de la deuda.")


def create_manual_entry(session: Session, user_id: UUID, data: TransactionCreate) -> Transaction:
    debt = get_owned_debt(session, data.debt_id, user_id)

    status = data.status or (
        TransactionStatus.pending if data.type == TransactionType.payment else TransactionStatus.completed
    )
    if data.type == TransactionType.payment:
        _check_manual_payment(debt, data.payment_schedule_index, status)

    with atomic(session):
        if data.type == TransactionType.payment:
            # La cuota pudo pagarse mientras tanto
            session.expire_all()
            debt = get_owned_debt(session, data.debt_id, user_id)
            _check_manual_payment(debt, data.payment_schedule_index, status)

        entry = append_entry(
            session,
            debt=debt,
            user_id=user_id,
            type=data.type,
            amount=data.amount,
            description=data.description,
            transaction_date=data.transaction_date,
            payment_schedule_index=data.payment_schedule_index,
            bank_reference=data.bank_reference,
            payment_method=data.payment_method,
            status=status,
        )

    session.refresh(entry)
    logger.info(
        "Movimiento manual registrado",
        extra={"action": "transaction.create", "user_id": user_id, "debt_id": debt.id, "transaction_id": entry.id},
    )
    return entry


def list_transactions(
    session: Session,
    user_id: UUID,
    *,
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    debt_id: Optional[int] = None,
    start_date: Optional[dt.datetime] = None,
    end_date: Optional[dt.datetime] = None,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "transaction_date",
    sort_order: str = "desc",
) -> Tuple[List[Transaction], int]:
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"No se puede ordenar por '{sort_by}'.")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("El orden debe ser 'asc' o 'desc'.")

    query = select(Transaction).where(Transaction.user_id == user_id)

    if type:
        query = query.where(Transaction.type == type)
    if status:
        query = query.where(Transaction.status == status)
    if debt_id:
        query = query.where(Transaction.debt_id == debt_id)
    if start_date:
        query = query.where(Transaction.transaction_date >= normalize_dt(start_date))
    if end_date:
        query = query.where(Transaction.transaction_date <= normalize_dt(end_date))

    total = session.exec(select(func.count()).select_from(query.subquery())).one()

    column = SORTABLE_FIELDS[sort_by]
    query = query.order_by(column.desc() if sort_order == "desc" else column.asc(), Transaction.id)

    transactions = session.exec(query.offset((page - 1) * page_size).limit(page_size)).all()
    return list(transactions), total


def update_transaction(session: Session, transaction: Transaction, data: TransactionUpdateLimited) -> Transaction:
    if transaction.status == TransactionStatus.completed:
        raise ImmutableFieldError("No se puede modificar un movimiento completado.")
    if data.description is None and data.bank_reference is None:
        raise ValidationError("Nada para actualizar.")

    with atomic(session):
        session.refresh(transaction)
        if transaction.status == TransactionStatus.completed:
            raise ImmutableFieldError("No se puede modificar un movimiento completado.")
        if data.description is not None:
            transaction.description = data.description.strip()
        if data.bank_reference is not None:
            transaction.bank_reference = data.bank_reference.strip()
        session.add(transaction)

    session.refresh(transaction)
    return transaction


def delete_transaction(session: Session, transaction: Transaction):
    # Un asiento completado ya se reflejó en la deuda: borrarlo la descuadraría
    if transaction.status == TransactionStatus.completed:
        raise ConflictError("No se pueden eliminar movimientos completados.")

    transaction_id, user_id = transaction.id, transaction.user_id
    with atomic(session):
        session.refresh(transaction)
        if transaction.status == TransactionStatus.completed:
            raise ConflictError("No se pueden eliminar movimientos completados.")
        session.delete(transaction)

    logger.info(
        "Movimiento eliminado",
        extra={"action": "transaction.delete", "user_id": user_id, "transaction_id": transaction_id},
    )


def debt_transaction_summary(session: Session, debt: Debt) -> List[dict]:
    totals = session.exec(
        select(Transaction.type, func.sum(Transaction.amount), func.count())
        .where(Transaction.debt_id == debt.id)
        .group_by(Transaction.type)
    ).all()

    entries = session.exec(
        select(Transaction)
        .where(Transaction.debt_id == debt.id)
        .order_by(Transaction.transaction_date, Transaction.id)
    ).all()
    by_type = defaultdict(list)
    for entry in entries:
        by_type[entry.type].append(entry)

    return [
        {
            "type": tx_type.value if isinstance(tx_type, TransactionType) else tx_type,
            "total_amount": float(total_amount or 0),
            "count": count,
            "transactions": by_type[TransactionType(tx_type)],
        }
        for tx_type, total_amount, count in totals
    ]


def monthly_summary(session: Session, user_id: UUID, year: int, month: int) -> dict:
    if not 1 <= month <= 12 or year < 1:
        raise ValidationError("Indica un año y un mes válidos (1-12).")

    start, end = month_bounds(year, month)
    rows = session.exec(
        select(Transaction, Debt.bank_name)
        .join(Debt, Debt.id == Transaction.debt_id)
        .where(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.payment,
            Transaction.transaction_date >= start,
            Transaction.transaction_date < end,
        )
        .order_by(Transaction.transaction_date, Transaction.id)
    ).all()

    total_amount = Decimal("0.00")
    by_payment_method = defaultdict(lambda: Decimal("0.00"))
    by_bank = defaultdict(lambda: Decimal("0.00"))
    for transaction, bank_name in rows:
        total_amount += transaction.amount
        by_payment_method[transaction.payment_method.value] += transaction.amount
        by_bank[bank_name or "Desconocido"] += transaction.amount

    return {
        "year": year,
        "month": month,
        "summary": {
            "total_payments": len(rows),
            "total_amount": float(total_amount),
            "transaction_count": len(rows),
            "by_payment_method": {k: float(v) for k, v in by_payment_method.items()},
            "by_bank": {k: float(v) for k, v in by_bank.items()},
        },
        "transactions": [transaction for transaction, _ in rows],
    }


def transaction_analytics(
    session: Session,
    user_id: UUID,
    start_date: Optional[dt.datetime] = None,
    end_date: Optional[dt.datetime] = None,
) -> dict:
    # Por defecto, los últimos 12 meses
    end = normalize_dt(end_date) if end_date else utcnow()
    start = normalize_dt(start_date) if start_date else end - relativedelta(years=1)
    if start > end:
        raise ValidationError("La fecha inicial no puede ser posterior a la final.")

    year_col = extract("year", Transaction.transaction_date)
    month_col = extract("month", Transaction.transaction_date)
    rows = session.exec(
        select(
            Transaction.type,
            year_col.label("year"),
            month_col.label("month"),
            func.sum(Transaction.amount),
            func.count(),
        )
        .where(
            Transaction.user_id == user_id,
            Transaction.transaction_date >= start,
            Transaction.transaction_date <= end,
        )
        .group_by(Transaction.type, year_col, month_col)
        .order_by(year_col, month_col, Transaction.type)
    ).all()

    return {
        "period": {"start": start, "end": end},
        "analytics": [
            {
                "type": tx_type.value if isinstance(tx_type, TransactionType) else tx_type,
                "year": int(year),
                "month": int(month),
                "total_amount": float(total_amount or 0),
                "count": count,
            }
            for tx_type, year, month, total_amount, count in rows
        ],
    }
