"""
Decimal helpers for money and quantities.

Every amount in the engine is a :class:`~decimal.Decimal`. Rounding to a
currency's minor unit (paise, cents, ...) uses ``ROUND_HALF_UP`` and happens
exactly once per value, at the boundary that owns it.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

from babel.numbers import get_currency_precision

ZERO = Decimal("0")

# Significant digits, not decimal places.
DECIMAL_CONTEXT_PRECISION = 38


def to_decimal(value: str | int | Decimal) -> Decimal:
    """Parse an exact decimal. Floats are refused: they are not exact."""
    if isinstance(value, (bool, float)):
        raise TypeError(f"Refusing to build a Decimal from {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal number: {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"Not a finite decimal number: {value!r}")
    return parsed


def normalise_currency(code: str) -> str:
    code = code.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Currency must be a 3-letter code, got {code!r}")
    return code


def minor_unit_digits(currency: str) -> int:
    """Number of decimal places in the currency's minor unit (CLDR data, default 2)."""
    return get_currency_precision(normalise_currency(currency))


def round_minor(value: Decimal, currency: str) -> Decimal:
    """Round *value* half-up to the minor unit of *currency*."""
    quantizer = Decimal(10) ** -minor_unit_digits(currency)
    with localcontext() as ctx:
        ctx.prec = DECIMAL_CONTEXT_PRECISION
        return value.quantize(quantizer, rounding=ROUND_HALF_UP)


def half_minor_unit(currency: str) -> Decimal:
    return (Decimal(10) ** -minor_unit_digits(currency)) / 2


def multiply(a: Decimal, b: Decimal) -> Decimal:
    """Exact product; the context is widened so no digits are dropped."""
    with localcontext() as ctx:
        ctx.prec = DECIMAL_CONTEXT_PRECISION
        return a * b


def decimal_sum(values) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = DECIMAL_CONTEXT_PRECISION
        return sum(values, ZERO)


def to_fixed_string(value: Decimal, places: int = 2) -> str:
    """Fixed-point string for storage and wire formats."""
    quantizer = Decimal(10) ** -places
    with localcontext() as ctx:
        ctx.prec = DECIMAL_CONTEXT_PRECISION
        return str(value.quantize(quantizer, rounding=ROUND_HALF_UP))
