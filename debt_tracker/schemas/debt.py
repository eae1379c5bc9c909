# debt_tracker/schemas/debt.py

from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from debt_tracker.models.enums import InstallmentStatus, PaymentMethod


# Los campos son opcionales a nivel de esquema: la validación de negocio
# (faltantes, rangos, amortización) la hace el servicio y responde 400.
class DebtCreate(BaseModel):
    bank_name: Optional[str] = Field(default=None, max_length=100)
    total_loan_amount: Optional[Decimal] = None
    loan_start_date: Optional[date] = None
    months_to_pay: Optional[int] = None
    monthly_amortization: Optional[Decimal] = None
    due_date: Optional[date] = None
    first_payment_month_offset: Optional[int] = None


class DebtUpdate(BaseModel):
    bank_name: Optional[str] = Field(default=None, max_length=100)
    total_loan_amount: Optional[Decimal] = None
    loan_start_date: Optional[date] = None
    months_to_pay: Optional[int] = None
    monthly_amortization: Optional[Decimal] = None
    due_date: Optional[date] = None
    first_payment_month_offset: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class InstallmentRead(BaseModel):
    position: int
    due_date: date
    due_amount: float
    status: InstallmentStatus
    bank_reference: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DebtRead(BaseModel):
    id: int
    user_id: UUID
    bank_name: str
    total_loan_amount: float
    total_paid_amount: float
    is_open: bool
    loan_start_date: date
    months_to_pay: int
    monthly_amortization: float
    due_date: date
    first_payment_month_offset: int
    remaining_balance: float
    total_paid_percentage: int
    is_overdue: bool
    payment_schedule: List[InstallmentRead] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DebtPayment(BaseModel):
    amount: Decimal
    payment_schedule_index: int
    bank_reference: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.bank_transfer
    description: Optional[str] = None


class DebtClose(BaseModel):
    remarks: Optional[str] = None
