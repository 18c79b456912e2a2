from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


ZERO = Decimal("0")
TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Parse a ledger amount; blanks are zero, floats go through their repr."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return _finite(value, value)
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount value: {value!r}")
    if isinstance(value, (int, float)):
        return _finite(Decimal(str(value)), value)

    text = str(value).strip().replace(" ", "").replace("\u00a0", "")
    if not text:
        return ZERO

    if "," in text and "." not in text:
        text = text.replace(",", ".")

    try:
        parsed = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount value: '{value}'") from exc
    return _finite(parsed, value)


def _finite(parsed: Decimal, raw: Any) -> Decimal:
    # NaN and Infinity are valid Decimal text
    if not parsed.is_finite():
        raise ValueError(f"Invalid amount value: '{raw}'")
    return parsed


def q2(value: Decimal | None) -> Decimal:
    # ROUND_HALF_UP on Decimal rounds ties away from zero for negatives too
    return (value or ZERO).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    return format(q2(value), "f")


def within_tolerance(left: Decimal, right: Decimal, tolerance: Decimal) -> bool:
    return abs(left - right) <= tolerance
