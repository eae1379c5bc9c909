from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlmodel import Field, Relationship, SQLModel

from debt_tracker.models.enums import PaymentMethod, TransactionStatus, TransactionType
from debt_tracker.utils.dates import utcnow

if TYPE_CHECKING:
    from debt_tracker.models.debt import Debt


# Asiento del libro de movimientos de una deuda. Solo description y
# bank_reference se pueden editar, y solo si el asiento no está completado.
class Transaction(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)
    type: TransactionType = Field(index=True)
    amount: Decimal = Field(max_digits=14, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: datetime = Field(default_factory=utcnow, index=True)
    status: TransactionStatus = Field(default=TransactionStatus.completed, index=True)

    debt_id: int = Field(foreign_key="debt.id", index=True)
    debt: Optional["Debt"] = Relationship(back_populates="transactions")

    # Solo obligatorio en pagos
    payment_schedule_index: Optional[int] = None
    bank_reference: Optional[str] = Field(default=None, max_length=100)
    payment_method: PaymentMethod = Field(default=PaymentMethod.bank_transfer)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
