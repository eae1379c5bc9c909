from debt_tracker.models.user import User
from debt_tracker.models.debt import Debt, Installment
from debt_tracker.models.transaction import Transaction

__all__ = ["User", "Debt", "Installment", "Transaction"]
