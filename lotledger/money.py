"""Decimal helpers shared by the ledger and the adjustment engine."""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_EVEN, Decimal, InvalidOperation, getcontext

from .core.config import get_settings
from .errors import ValidationError

getcontext().prec = 28

ZERO = Decimal("0")


def to_decimal(value: object, field: str) -> Decimal:
    """Coerce ``value`` to ``Decimal`` without passing through binary float."""

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValidationError(f"{field} must be a number") from exc
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite")
    return result


def quantize_money(value: Decimal, quantum: Decimal | None = None) -> Decimal:
    """Round half-even to the configured money quantum."""

    if quantum is None:
        quantum = get_settings().money_quantum
    return value.quantize(quantum, rounding=ROUND_HALF_EVEN)


def floor_shares(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


__all__ = ["ZERO", "to_decimal", "quantize_money", "floor_shares"]
