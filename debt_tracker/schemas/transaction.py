from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from debt_tracker.models.enums import PaymentMethod, TransactionStatus, TransactionType


class TransactionCreate(BaseModel):
    type: TransactionType
    amount: Decimal
    debt_id: int
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: Optional[datetime] = None
    payment_schedule_index: Optional[int] = None
    bank_reference: Optional[str] = Field(default=None, max_length=100)
    payment_method: Optional[PaymentMethod] = None
    status: Optional[TransactionStatus] = None


class TransactionRead(BaseModel):
    id: int
    user_id: UUID
    debt_id: int
    type: TransactionType
    amount: float
    description: Optional[str] = None
    transaction_date: datetime
    payment_schedule_index: Optional[int] = None
    bank_reference: Optional[str] = None
    payment_method: PaymentMethod
    status: TransactionStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionUpdateLimited(BaseModel):
    # Cualquier otro campo es inmutable
    description: Optional[str] = Field(default=None, max_length=500)
    bank_reference: Optional[str] = Field(default=None, max_length=100)

    model_config = ConfigDict(extra="forbid")
