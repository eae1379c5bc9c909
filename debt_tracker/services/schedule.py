import datetime as dt
from decimal import Decimal
from typing import Iterable, List, Optional

from debt_tracker.core.errors import ConflictError, InvalidAmortizationError, ValidationError
from debt_tracker.models.debt import Installment
from debt_tracker.models.enums import InstallmentStatus
from debt_tracker.services.status import evaluate_status
from debt_tracker.utils.dates import add_months, utcnow
from debt_tracker.utils.money import to_money


def generate_schedule(
    total_loan_amount,
    loan_start_date: dt.date,
    months_to_pay: int,
    monthly_amortization,
    first_payment_month_offset: int,
    paid_installments: Iterable[Installment] = (),
    now: Optional[dt.datetime] = None,
) -> List[Installment]:
    """Arma el cronograma de cuotas de un préstamo.

    La cuota `i` vence `first_payment_month_offset + i` meses después de
    `loan_start_date`. Todas las cuotas pendientes valen `monthly_amortization`
    salvo la última pendiente, que absorbe el resto para que la suma del
    cronograma sea exactamente `total_loan_amount`.

    Las cuotas de `paid_installments` se conservan tal cual en su posición y
    solo se recalculan las pendientes contra el saldo que realmente falta.
    No toca la sesión ni modifica los objetos recibidos.
    """
    if months_to_pay is None or months_to_pay < 1:
        raise ValidationError("Los meses a pagar deben ser al menos 1.")
    if first_payment_month_offset is None or not 0 <= first_payment_month_offset <= 11:
        raise ValidationError("El mes del primer pago debe estar entre 0 y 11.")

    total = to_money(total_loan_amount, "monto total del préstamo")
    amortization = to_money(monthly_amortization, "monto de amortización")
    now = now or utcnow()

    paid_by_position = {
        p.position: p for p in paid_installments if p.status == InstallmentStatus.paid
    }
    if any(position >= months_to_pay for position in paid_by_position):
        raise ConflictError("El cronograma nuevo no puede descartar cuotas ya pagadas.")

    paid_amount = paid_total(paid_by_position.values())
    remaining_balance = total - paid_amount
    pending_positions = [i for i in range(months_to_pay) if i not in paid_by_position]

    last_amount = Decimal("0.00")
    if pending_positions:
        regular_months = len(pending_positions) - 1
        regular_total = regular_months * amortization
        if regular_total >= remaining_balance:
            raise InvalidAmortizationError(
                f"Amortización mensual inválida. {regular_months} pagos de {amortization} "
                f"igualan o superan el saldo pendiente de {remaining_balance}."
            )
        last_amount = remaining_balance - regular_total

    schedule: List[Installment] = []
    for position in range(months_to_pay):
        if position in paid_by_position:
            schedule.append(paid_by_position[position])
            continue

        installment = Installment(
            position=position,
            due_date=add_months(loan_start_date, first_payment_month_offset + position),
            due_amount=last_amount if position == pending_positions[-1] else amortization,
            status=InstallmentStatus.upcoming,
        )
        installment.status = evaluate_status(installment, now)
        schedule.append(installment)

    return schedule


def paid_total(schedule: Iterable[Installment]) -> Decimal:
    return sum(
        (i.due_amount for i in schedule if i.status == InstallmentStatus.paid),
        Decimal("0.00"),
    )
