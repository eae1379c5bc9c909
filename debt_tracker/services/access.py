from uuid import UUID

from sqlmodel import Session

from debt_tracker.core.errors import ForbiddenError, NotFoundError
from debt_tracker.models.debt import Debt
from debt_tracker.models.transaction import Transaction


def get_owned_debt(session: Session, debt_id: int, user_id: UUID) -> Debt:
    debt = session.get(Debt, debt_id)
    if not debt:
        raise NotFoundError("Deuda no encontrada")
    if debt.user_id != user_id:
        raise ForbiddenError("No autorizado para acceder a esta deuda")
    return debt


def get_owned_transaction(session: Session, transaction_id: int, user_id: UUID) -> Transaction:
    transaction = session.get(Transaction, transaction_id)
    if not transaction:
        raise NotFoundError("Movimiento no encontrado")
    if transaction.user_id != user_id:
        raise ForbiddenError("No autorizado para acceder a este movimiento")
    return transaction
