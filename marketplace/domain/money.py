# marketplace/domain/money.py
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Decimal:
    """Zaokraglenie do groszy w miejscu liczenia, nigdy pozniej."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def floor_zero(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite zwraca naive datetime, zakladamy UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
