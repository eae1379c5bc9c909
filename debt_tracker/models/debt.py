# debt_tracker/models/debt.py

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from sqlmodel import Field, Relationship, SQLModel

from debt_tracker.models.enums import InstallmentStatus, PaymentMethod
from debt_tracker.utils.dates import utcnow

if TYPE_CHECKING:
    from debt_tracker.models.transaction import Transaction

MONEY = {"max_digits": 14, "decimal_places": 2}


class Debt(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)
    bank_name: str = Field(max_length=100, index=True)  # Ej: "Bancolombia"
    total_loan_amount: Decimal = Field(**MONEY)
    total_paid_amount: Decimal = Field(default=Decimal("0.00"), **MONEY)
    is_open: bool = Field(default=True, index=True)
    loan_start_date: date
    months_to_pay: int
    monthly_amortization: Decimal = Field(**MONEY)
    due_date: date
    first_payment_month_offset: int = Field(default=0)  # 0-11 meses de gracia
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    payment_schedule: List["Installment"] = Relationship(
        back_populates="debt",
        sa_relationship_kwargs={"order_by": "Installment.position", "cascade": "all, delete-orphan"},
    )
    transactions: List["Transaction"] = Relationship(
        back_populates="debt",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def remaining_balance(self) -> Decimal:
        return max(Decimal("0"), self.total_loan_amount - self.total_paid_amount)

    @property
    def total_paid_percentage(self) -> int:
        if not self.total_loan_amount:
            return 0
        return min(100, round(self.total_paid_amount / self.total_loan_amount * 100))

    @property
    def is_overdue(self) -> bool:
        if not self.is_open:
            return False
        return any(i.status == InstallmentStatus.overdue for i in self.payment_schedule)


class Installment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    debt_id: Optional[int] = Field(default=None, foreign_key="debt.id", index=True)
    position: int  # índice de la cuota dentro del cronograma
    due_date: date
    due_amount: Decimal = Field(**MONEY)
    status: InstallmentStatus = Field(default=InstallmentStatus.upcoming, index=True)
    bank_reference: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    description: Optional[str] = None

    debt: Optional[Debt] = Relationship(back_populates="payment_schedule")
