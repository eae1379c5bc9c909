import datetime as dt
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import Session, select

from debt_tracker.core.errors import DebtClosedError, ImmutableFieldError, ValidationError, WriteConflictError
from debt_tracker.database import atomic
from debt_tracker.models.debt import Debt, Installment
from debt_tracker.models.enums import InstallmentStatus, PaymentMethod, TransactionType
from debt_tracker.schemas.debt import DebtCreate, DebtUpdate
from debt_tracker.services.access import get_owned_debt
from debt_tracker.services.ledger import append_entry, debt_transaction_summary
from debt_tracker.services.schedule import generate_schedule
from debt_tracker.services.status import count_by_status, evaluate_status
from debt_tracker.utils.dates import epoch_ms, normalize_dt, utcnow
from debt_tracker.utils.money import to_money

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "bank_name",
    "total_loan_amount",
    "loan_start_date",
    "months_to_pay",
    "monthly_amortization",
    "due_date",
    "first_payment_month_offset",
)
# Campos que definen el cronograma; si cambian se regenera
SCHEDULE_FIELDS = (
    "total_loan_amount",
    "loan_start_date",
    "months_to_pay",
    "monthly_amortization",
    "first_payment_month_offset",
)
# No se pueden tocar una vez que hay pagos
LOCKED_AFTER_PAYMENT = ("total_loan_amount", "months_to_pay", "first_payment_month_offset", "loan_start_date")

SORTABLE_FIELDS = {
    "created_at": Debt.created_at,
    "bank_name": Debt.bank_name,
    "due_date": Debt.due_date,
    "loan_start_date": Debt.loan_start_date,
    "total_loan_amount": Debt.total_loan_amount,
}


def _clean_fields(values: dict) -> dict:
    """Valida y normaliza los campos de alta/edición de una deuda."""
    cleaned = dict(values)

    if "bank_name" in cleaned:
        bank_name = (cleaned["bank_name"] or "").strip()
        if not bank_name:
            raise ValidationError("El nombre del banco es obligatorio.")
        cleaned["bank_name"] = bank_name

    if "total_loan_amount" in cleaned:
        cleaned["total_loan_amount"] = to_money(cleaned["total_loan_amount"], "monto total del préstamo")
        if cleaned["total_loan_amount"] <= 0:
            raise ValidationError("El monto total del préstamo debe ser mayor a cero.")

    if "monthly_amortization" in cleaned:
        cleaned["monthly_amortization"] = to_money(cleaned["monthly_amortization"], "monto de amortización")
        if cleaned["monthly_amortization"] <= 0:
            raise ValidationError("La amortización mensual debe ser mayor a cero.")

    if "months_to_pay" in cleaned and cleaned["months_to_pay"] < 1:
        raise ValidationError("Los meses a pagar deben ser al menos 1.")

    if "first_payment_month_offset" in cleaned and not 0 <= cleaned["first_payment_month_offset"] <= 11:
        raise ValidationError("El mes del primer pago debe estar entre 0 y 11.")

    return cleaned


def create_debt(session: Session, user_id: UUID, data: DebtCreate) -> Debt:
    values = data.model_dump()
    missing = [field for field in REQUIRED_FIELDS if values.get(field) is None]
    if missing:
        raise ValidationError(f"Faltan campos obligatorios: {', '.join(missing)}")
    values = _clean_fields(values)

    schedule = generate_schedule(
        values["total_loan_amount"],
        values["loan_start_date"],
        values["months_to_pay"],
        values["monthly_amortization"],
        values["first_payment_month_offset"],
    )

    debt = Debt(**values, user_id=user_id)
    debt.payment_schedule = schedule

    with atomic(session):
        session.add(debt)
        append_entry(
            session,
            debt=debt,
            user_id=user_id,
            type=TransactionType.loan,
            amount=debt.total_loan_amount,
            description=f"Desembolso inicial del préstamo de {debt.bank_name}",
            transaction_date=normalize_dt(debt.loan_start_date),
            bank_reference=f"LOAN-{epoch_ms()}",
            payment_method=PaymentMethod.bank_transfer,
        )

    session.refresh(debt)
    logger.info(
        "Deuda creada",
        extra={"action": "debt.create", "user_id": user_id, "debt_id": debt.id, "amount": debt.total_loan_amount},
    )
    return debt


def _check_locked_fields(debt: Debt, changes: dict):
    if debt.total_paid_amount > 0 and any(field in changes for field in LOCKED_AFTER_PAYMENT):
        raise ImmutableFieldError(
            "No se puede modificar el monto, los meses, el mes del primer pago ni la fecha de inicio "
            "después de registrar pagos."
        )


def _regenerated_schedule(debt: Debt, changes: dict) -> Optional[List[Installment]]:
    """Cronograma nuevo si cambió algún campo que lo define, o None."""
    if not any(field in changes and changes[field] != getattr(debt, field) for field in SCHEDULE_FIELDS):
        return None

    params = {field: changes.get(field, getattr(debt, field)) for field in SCHEDULE_FIELDS}
    paid = [i for i in debt.payment_schedule if i.status == InstallmentStatus.paid]
    return generate_schedule(
        params["total_loan_amount"],
        params["loan_start_date"],
        params["months_to_pay"],
        params["monthly_amortization"],
        params["first_payment_month_offset"],
        paid_installments=paid,
    )


def _claim_debt_row(session: Session, debt: Debt, **values):
    """UPDATE condicionado al total pagado y al estado leídos.

    Si otra operación cambió la deuda desde la relectura no toca nada y
    falla; si no, deja la fila tomada hasta el commit.
    """
    claimed = session.execute(
        update(Debt)
        .where(
            Debt.id == debt.id,
            Debt.total_paid_amount == debt.total_paid_amount,
            Debt.is_open == debt.is_open,
        )
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise WriteConflictError("La deuda fue modificada por otra operación. Intenta de nuevo.")


def update_debt(session: Session, debt_id: int, user_id: UUID, data: DebtUpdate) -> Debt:
    debt = get_owned_debt(session, debt_id, user_id)

    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Nada para actualizar.")
    nulls = [field for field, value in changes.items() if value is None]
    if nulls:
        raise ValidationError(f"Estos campos no pueden ser nulos: {', '.join(nulls)}")

    _check_locked_fields(debt, changes)
    changes = _clean_fields(changes)
    _regenerated_schedule(debt, changes)

    with atomic(session):
        # Releer: un pago concurrente pudo cambiar el cronograma y el total pagado
        session.expire_all()
        debt = get_owned_debt(session, debt_id, user_id)
        _check_locked_fields(debt, changes)
        new_schedule = _regenerated_schedule(debt, changes)
        _claim_debt_row(session, debt)

        old_amortization = debt.monthly_amortization
        for field, value in changes.items():
            setattr(debt, field, value)
        if new_schedule is not None:
            debt.payment_schedule = new_schedule
        session.add(debt)

        if "monthly_amortization" in changes:
            description = f"Actualización de la deuda: amortización de {old_amortization} a {debt.monthly_amortization}"
        else:
            description = "Actualización de los datos de la deuda"
        append_entry(
            session,
            debt=debt,
            user_id=user_id,
            type=TransactionType.update,
            amount=debt.monthly_amortization,
            description=description,
            payment_method=PaymentMethod.system,
        )

    session.refresh(debt)
    logger.info(
        "Deuda actualizada",
        extra={"action": "debt.update", "user_id": user_id, "debt_id": debt.id},
    )
    return debt


def close_debt(session: Session, debt_id: int, user_id: UUID, remarks: Optional[str]) -> Debt:
    debt = get_owned_debt(session, debt_id, user_id)

    if not remarks or not remarks.strip():
        raise ValidationError("Las observaciones son obligatorias para cerrar la deuda.")
    if not debt.is_open:
        raise DebtClosedError("La deuda ya está cerrada.")

    with atomic(session):
        session.expire_all()
        debt = get_owned_debt(session, debt_id, user_id)
        if not debt.is_open:
            raise DebtClosedError("La deuda ya está cerrada.")

        remaining = debt.remaining_balance
        _claim_debt_row(session, debt, is_open=False)
        append_entry(
            session,
            debt=debt,
            user_id=user_id,
            type=TransactionType.close,
            amount=remaining,
            description=remarks.strip(),
            bank_reference=f"CLOSE-{epoch_ms()}",
            payment_method=PaymentMethod.system,
        )

    session.refresh(debt)
    logger.info(
        "Deuda cerrada",
        extra={"action": "debt.close", "user_id": user_id, "debt_id": debt.id, "amount": remaining},
    )
    return debt


def delete_debt(session: Session, debt_id: int, user_id: UUID):
    get_owned_debt(session, debt_id, user_id)

    # Se borra con todos sus movimientos, sin asiento de reversa
    with atomic(session):
        session.expire_all()
        debt = get_owned_debt(session, debt_id, user_id)
        paid_amount = debt.total_paid_amount
        session.delete(debt)

    if paid_amount > 0:
        logger.warning(
            "Deuda con pagos eliminada junto con su historial",
            extra={"action": "debt.delete", "user_id": user_id, "debt_id": debt_id, "amount": paid_amount},
        )
    else:
        logger.info("Deuda eliminada", extra={"action": "debt.delete", "user_id": user_id, "debt_id": debt_id})


def refresh_overdue_status(session: Session, debt: Debt, now: Optional[dt.datetime] = None) -> int:
    """Recalcula y guarda el estado de las cuotas no pagadas de la deuda.

    Cada cambio se escribe con la condición de que la cuota siga sin pagar,
    así un pago concurrente nunca queda pisado por el recálculo.
    """
    now = now or utcnow()
    changed = 0
    with atomic(session):
        for installment in debt.payment_schedule:
            new_status = evaluate_status(installment, now)
            if new_status == installment.status:
                continue
            result = session.execute(
                update(Installment)
                .where(Installment.id == installment.id, Installment.status != InstallmentStatus.paid)
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
            changed += result.rowcount

    if changed:
        session.refresh(debt)
    return changed


def get_debt(session: Session, debt_id: int, user_id: UUID) -> Debt:
    debt = get_owned_debt(session, debt_id, user_id)
    refresh_overdue_status(session, debt)
    return debt


def list_debts(
    session: Session,
    user_id: UUID,
    *,
    status: Optional[str] = None,
    bank_name: Optional[str] = None,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    if status not in (None, "open", "closed"):
        raise ValidationError("El estado debe ser 'open' o 'closed'.")
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"No se puede ordenar por '{sort_by}'.")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("El orden debe ser 'asc' o 'desc'.")

    query = select(Debt).where(Debt.user_id == user_id)
    if status == "open":
        query = query.where(Debt.is_open == True)  # noqa: E712
    elif status == "closed":
        query = query.where(Debt.is_open == False)  # noqa: E712
    if bank_name:
        query = query.where(Debt.bank_name.ilike(f"%{bank_name}%"))

    total = session.exec(select(func.count()).select_from(query.subquery())).one()

    column = SORTABLE_FIELDS[sort_by]
    query = query.order_by(column.desc() if sort_order == "desc" else column.asc(), Debt.id)
    debts = session.exec(query.offset((page - 1) * page_size).limit(page_size)).all()

    stats = {
        "open": {"count": 0, "total_amount": 0.0},
        "closed": {"count": 0, "total_amount": 0.0},
    }
    rows = session.exec(
        select(Debt.is_open, func.count(), func.sum(Debt.total_loan_amount))
        .where(Debt.user_id == user_id)
        .group_by(Debt.is_open)
    ).all()
    for is_open, count, total_amount in rows:
        stats["open" if is_open else "closed"] = {"count": count, "total_amount": float(total_amount or 0)}

    return {"items": list(debts), "total": total, "stats": stats}


def list_overdue_debts(session: Session, user_id: UUID) -> List[Debt]:
    debts = session.exec(
        select(Debt).where(Debt.user_id == user_id, Debt.is_open == True).order_by(Debt.due_date)  # noqa: E712
    ).all()

    overdue = []
    for debt in debts:
        refresh_overdue_status(session, debt)
        if debt.is_overdue:
            overdue.append(debt)
    return overdue


def debt_summary(session: Session, debt_id: int, user_id: UUID) -> dict:
    debt = get_debt(session, debt_id, user_id)
    schedule = debt.payment_schedule
    counts = count_by_status(schedule)

    paid = counts[InstallmentStatus.paid]
    next_due = next((i.due_date for i in schedule if i.status != InstallmentStatus.paid), None)

    return {
        "debt": debt,
        "analytics": {
            "total_payments": len(schedule),
            "paid_payments": paid,
            "overdue_payments": counts[InstallmentStatus.overdue],
            "upcoming_payments": counts[InstallmentStatus.upcoming],
            "completion_percentage": round(paid / len(schedule) * 100) if schedule else 0,
            "remaining_balance": float(debt.remaining_balance),
            "next_payment_due": next_due,
        },
        "transactions": debt_transaction_summary(session, debt),
    }

