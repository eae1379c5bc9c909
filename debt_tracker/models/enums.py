from enum import Enum


class InstallmentStatus(str, Enum):
    upcoming = "upcoming"
    overdue = "overdue"
    paid = "paid"


class PaymentMethod(str, Enum):
    bank_transfer = "bank_transfer"
    cash = "cash"
    check = "check"
    online = "online"
    auto_debit = "auto_debit"
    system = "system"  # asientos generados por el propio sistema (cierre)


class TransactionType(str, Enum):
    loan = "loan"
    payment = "payment"
    update = "update"
    close = "close"


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
