import datetime as dt

from dateutil.relativedelta import relativedelta


def utcnow() -> dt.datetime:
    """Datetime naive en UTC, el formato que guardamos en la base."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def normalize_dt(value: dt.date | dt.datetime | str | None) -> dt.datetime:
    """Normaliza a datetime naive en UTC."""
    if value is None:
        return utcnow()

    if isinstance(value, dt.datetime):
        # Si viene aware, pásalo a UTC y quita tzinfo; si ya es naive, asume UTC
        return value.astimezone(dt.timezone.utc).replace(tzinfo=None) if value.tzinfo else value

    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time(0, 0, 0))

    if isinstance(value, str):
        # Acepta ISO con 'Z' o con offset
        s = value.replace("Z", "+00:00")
        try:
            parsed = dt.datetime.fromisoformat(s)
        except ValueError:
            # fallback a YYYY-MM-DD
            parsed = dt.datetime.strptime(value, "%Y-%m-%d")
        return normalize_dt(parsed)

    raise TypeError(f"Unsupported type for date: {type(value)!r}")


def as_date(value: dt.date | dt.datetime) -> dt.date:
    if isinstance(value, dt.datetime):
        return normalize_dt(value).date()
    return value


def add_months(start: dt.date, months: int) -> dt.date:
    # relativedelta recorta al último día del mes (31 ene + 1 mes = 28/29 feb)
    return start + relativedelta(months=months)


def month_bounds(year: int, month: int) -> tuple[dt.datetime, dt.datetime]:
    """Inicio del mes y del mes siguiente (intervalo semiabierto)."""
    start = dt.datetime(year, month, 1)
    return start, start + relativedelta(months=1)


def epoch_ms() -> int:
    return int(dt.datetime.now(dt.timezone.utc).timestamp() * 1000)
