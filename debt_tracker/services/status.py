import datetime as dt
from collections import Counter
from typing import Iterable

from debt_tracker.models.debt import Installment
from debt_tracker.models.enums import InstallmentStatus
from debt_tracker.utils.dates import as_date


def evaluate_status(installment: Installment, now: dt.date | dt.datetime) -> InstallmentStatus:
    """Estado que le corresponde a una cuota en el instante `now`.

    Una cuota pagada no se reevalúa nunca. Las demás están vencidas si su
    fecha de pago ya pasó (comparación por día) y próximas en otro caso.
    """
    if installment.status == InstallmentStatus.paid:
        return InstallmentStatus.paid
    if installment.due_date < as_date(now):
        return InstallmentStatus.overdue
    return InstallmentStatus.upcoming


def count_by_status(schedule: Iterable[Installment]) -> Counter:
    return Counter(installment.status for installment in schedule)
