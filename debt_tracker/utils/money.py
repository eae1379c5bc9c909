from decimal import Decimal, InvalidOperation

from debt_tracker.core.errors import ValidationError

CENT = Decimal("0.01")


def to_money(value, field: str = "monto") -> Decimal:
    """Convierte a Decimal con dos decimales sin redondear en silencio."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"El {field} no es un número válido.")
    if not amount.is_finite():
        raise ValidationError(f"El {field} no es un número válido.")
    if amount != amount.quantize(CENT):
        raise ValidationError(f"El {field} admite como máximo dos decimales.")
    return amount.quantize(CENT)
