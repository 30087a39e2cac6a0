"""Euro amounts: parsing user input, cents conversion and display."""

from __future__ import annotations

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
CURRENCY_SYMBOL = "€"
# Largest single amount accepted from a form or stored as cents.
MAX_AMOUNT = Decimal("1000000.00")

AmountLike = Union[Decimal, int, float, str]

_GROUPED_NUMBER = re.compile(r"^[+-]?\d[\d.,]*$")


def _parse_text(raw: str) -> Decimal:
    """Read "12,50", "12.50", "1,000" and "1.234,56" the way people type them.

    The last separator is the decimal mark only when one or two digits follow
    it; every other "," or "." groups thousands.
    """

    cleaned = raw.replace(CURRENCY_SYMBOL, "").replace(" ", "").strip()
    if not cleaned:
        return Decimal("0")
    if not _GROUPED_NUMBER.match(cleaned):
        return Decimal(cleaned)
    mark = max(cleaned.rfind(","), cleaned.rfind("."))
    whole, fraction = cleaned, ""
    if mark != -1 and 1 <= len(cleaned) - mark - 1 <= 2:
        whole, fraction = cleaned[:mark], cleaned[mark + 1 :]
    digits = whole.replace(",", "").replace(".", "")
    return Decimal(f"{digits}.{fraction}" if fraction else digits)


def to_decimal(value: AmountLike) -> Decimal:
    """Return ``value`` as euros rounded half-up to whole cents."""

    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts.")
    if isinstance(value, str):
        amount = _parse_text(value)
    elif isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        raise TypeError(f"Cannot read an amount from {type(value).__name__}")
    if not amount.is_finite():
        raise ValueError(f"Not an amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive(amount: Decimal, *, allow_zero: bool = False) -> Decimal:
    floor_ok = amount >= 0 if allow_zero else amount > 0
    if not floor_ok:
        raise ValueError("Amount must be zero or greater." if allow_zero else "Amount must be greater than zero.")
    return amount


def to_cents(value: AmountLike) -> int:
    """Whole cents as stored by the web database, at most ``MAX_AMOUNT``."""

    amount = to_decimal(value)
    if abs(amount) > MAX_AMOUNT:
        raise ValueError(f"Amounts are limited to {format_currency(MAX_AMOUNT)}.")
    return int(amount * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(CENT)


def format_currency(amount: Decimal) -> str:
    """``Decimal("1234.5")`` becomes ``€1,234.50``."""

    return f"{CURRENCY_SYMBOL}{to_decimal(amount):,.2f}"


__all__ = [
    "AmountLike",
    "CENT",
    "MAX_AMOUNT",
    "format_currency",
    "from_cents",
    "require_positive",
    "to_cents",
    "to_decimal",
]
