import logging
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import Session, select

from debt_tracker.core.errors import (
    AlreadyPaidError,
    AmountMismatchError,
    DebtClosedError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
    WriteConflictError,
)
from debt_tracker.database import atomic
from debt_tracker.models.debt import Debt, Installment
from debt_tracker.models.enums import InstallmentStatus, PaymentMethod, TransactionType
from debt_tracker.services.access import get_owned_debt
from debt_tracker.services.ledger import append_entry
from debt_tracker.services.status import evaluate_status
from debt_tracker.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _as_amount(value) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("El monto del pago no es un número válido.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("El monto debe ser mayor a cero.")
    return amount


def _validate_payment(
    debt: Debt,
    payment_schedule_index: int,
    amount: Decimal,
    bank_reference: Optional[str],
) -> Installment:
    if not debt.is_open:
        raise DebtClosedError("La deuda está cerrada")

    schedule = debt.payment_schedule
    if payment_schedule_index is None or not 0 <= payment_schedule_index < len(schedule):
        raise NotFoundError("Índice de cuota inválido")

    installment = schedule[payment_schedule_index]
    if installment.status == InstallmentStatus.paid:
        raise AlreadyPaidError("La cuota ya fue pagada")

    # El pago debe ser exactamente el monto programado, ni más ni menos
    if amount != installment.due_amount:
        raise AmountMismatchError(
            f"El monto del pago ({amount}) no coincide con el monto programado ({installment.due_amount})."
        )

    if debt.total_paid_amount + amount > debt.total_loan_amount:
        raise OverpaymentError(
            f"El pago de {amount} excede el monto total del préstamo. "
            f"Máximo permitido: {debt.total_loan_amount - debt.total_paid_amount}."
        )

    if not bank_reference or not bank_reference.strip():
        raise ValidationError("La referencia bancaria es obligatoria")

    return installment


def make_payment(
    session: Session,
    debt_id: int,
    user_id: UUID,
    payment_schedule_index: int,
    amount,
    bank_reference: Optional[str],
    payment_method: Optional[PaymentMethod] = None,
    description: Optional[str] = None,
) -> Debt:
    """Paga una cuota del cronograma.

    Marca la cuota como pagada, suma el monto al total pagado, cierra la deuda
    si ya no quedan cuotas pendientes y registra el asiento de pago, todo en
    una sola unidad atómica. Las validaciones se repiten dentro de la unidad
    para que dos pagos simultáneos de la misma cuota no la paguen dos veces.
    """
    amount = _as_amount(amount)
    payment_method = payment_method or PaymentMethod.bank_transfer

    debt = get_owned_debt(session, debt_id, user_id)
    _validate_payment(debt, payment_schedule_index, amount, bank_reference)

    with atomic(session):
        # Releer el estado actual: lo leído arriba puede estar desactualizado
        session.expire_all()
        debt = get_owned_debt(session, debt_id, user_id)
        installment = _validate_payment(debt, payment_schedule_index, amount, bank_reference)

        now = utcnow()
        was_overdue = evaluate_status(installment, now) == InstallmentStatus.overdue
        marked = session.execute(
            update(Installment)
            .where(Installment.id == installment.id, Installment.status != InstallmentStatus.paid)
            .values(
                status=InstallmentStatus.paid,
                bank_reference=bank_reference.strip(),
                payment_method=payment_method,
                description=description,
                payment_date=now,
            )
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount != 1:
            raise AlreadyPaidError("La cuota ya fue pagada")

        previous_paid = debt.total_paid_amount
        swapped = session.execute(
            update(Debt)
            .where(Debt.id == debt.id, Debt.total_paid_amount == previous_paid, Debt.is_open == True)  # noqa: E712
            .values(total_paid_amount=previous_paid + amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise WriteConflictError("La deuda fue modificada por otra operación. Intenta de nuevo.")

        pending = session.exec(
            select(func.count())
            .select_from(Installment)
            .where(Installment.debt_id == debt.id, Installment.status != InstallmentStatus.paid)
        ).one()
        if pending == 0:
            session.execute(
                update(Debt)
                .where(Debt.id == debt.id)
                .values(is_open=False)
                .execution_options(synchronize_session=False)
            )

        append_entry(
            session,
            debt=debt,
            user_id=user_id,
            type=TransactionType.payment,
            amount=amount,
            description=description or f"Pago de la cuota {payment_schedule_index + 1}",
            transaction_date=now,
            payment_schedule_index=payment_schedule_index,
            bank_reference=bank_reference.strip(),
            payment_method=payment_method,
        )

    session.refresh(debt)
    logger.info(
        "Pago registrado" + (" (cuota vencida)" if was_overdue else ""),
        extra={"action": "debt.payment", "user_id": user_id, "debt_id": debt.id, "amount": amount},
    )
    return debt
