"""Numeric validation and defensive display formatting for money amounts."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any

CALCULATION_ERROR = "계산 오류"

_SYMBOLS = {"KRW": "₩", "USD": "$", "EUR": "€", "JPY": "¥"}
# Currencies shown without minor units
_WHOLE_UNIT = frozenset({"KRW", "JPY"})
# Wide enough for any finite float at cent precision
_CONTEXT = Context(prec=400)


def is_valid_number(value: Any) -> bool:
    """Finite real number that fits a float. Bools are rejected even though they are ints."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def is_valid_rate(value: Any) -> bool:
    """Finite, strictly positive number."""
    return is_valid_number(value) and value > 0


def _signed(amount: float, places: int, symbol: str) -> str:
    quant = Decimal(1).scaleb(-places)
    rounded = Decimal(repr(abs(amount))).quantize(quant, rounding=ROUND_HALF_UP, context=_CONTEXT)
    sign = "-" if amount < 0 and rounded else ""
    return f"{sign}{symbol}{rounded:,.{places}f}"


def format_amount(amount: Any) -> str:
    """Render a KRW total for display: ``"₩12,345"``.

    NaN, infinities and non-numbers render as the fixed ``CALCULATION_ERROR``
    sentinel instead of leaking ``"nan"``/``"inf"`` into the UI.
    """
    if not is_valid_number(amount):
        return CALCULATION_ERROR
    if amount == 0:
        return "₩0"
    return _signed(amount, 0, "₩")


def format_currency(amount: Any, currency: str) -> str:
    """Render ``amount`` with the symbol for ``currency``.

    Unknown currencies fall back to the ISO code as a suffix.
    """
    if not is_valid_number(amount):
        return CALCULATION_ERROR
    code = currency.upper() if isinstance(currency, str) else ""
    places = 0 if code in _WHOLE_UNIT else 2
    symbol = _SYMBOLS.get(code)
    if symbol is None:
        return f"{_signed(amount, places, '')} {code}".rstrip()
    return _signed(amount, places, symbol)
